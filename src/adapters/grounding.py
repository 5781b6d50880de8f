"""
Resolution of service grounding metadata into typed source references.
"""

from typing import Any, List

from common.entities import GroundingReference, MapSource, WebSource


def resolve_grounding(metadata: Any) -> List[GroundingReference]:
    """
    Convert SDK grounding metadata into WebSource/MapSource entries.

    Chunks without a URI carry nothing the browser can link to and are dropped.
    """
    if metadata is None:
        return []

    references: List[GroundingReference] = []
    for chunk in getattr(metadata, "grounding_chunks", None) or []:
        web = getattr(chunk, "web", None)
        if web is not None and getattr(web, "uri", None):
            references.append(WebSource(title=web.title or web.uri, uri=web.uri))
            continue

        maps = getattr(chunk, "maps", None)
        if maps is not None and getattr(maps, "uri", None):
            references.append(MapSource(title=maps.title or maps.uri, uri=maps.uri))

    return references
