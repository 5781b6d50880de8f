"""
Course catalog and fixed instruction text for the portal.
"""

from typing import Dict, List, Optional

from common.entities import AcademicLevel, Course, Faculty, Lesson

UNIVERSITY = "University of Nairobi"

ADVISOR_SYSTEM_INSTRUCTION = (
    "You are the Seleste AI Academic Advisor. You represent the elite faculty of the "
    "University of Nairobi. Provide clean, professional, and technical responses formatted "
    "in high-fidelity academic Markdown."
)

LIVE_SYSTEM_INSTRUCTION = (
    "You are the Seleste Live Academic Guide. Engage in helpful, high-fidelity technical "
    "conversation."
)

PROMPT_SUGGESTIONS = [
    "Enhance CMOS architecture clarity",
    "Apply retro-blueprint schematic filter",
    "Isolate 8085 microprocessor ALU pins",
    "Highlight digital signal conditioning path",
    "Augment PCB trace contrast",
    "Simulate thermal imaging on chip surface",
]


def _course(
    course_id: str,
    name: str,
    level: AcademicLevel,
    faculty: Faculty,
    years: int,
    lessons: List[tuple],
) -> Course:
    return Course(
        id=course_id,
        name=name,
        level=level,
        faculty=faculty,
        university=UNIVERSITY,
        years=years,
        lessons=[
            Lesson(id=lid, title=title, code=code, description=description, content=content)
            for lid, title, code, description, content in lessons
        ],
    )


COURSES: List[Course] = [
    # Faculty of Science & Technology
    _course(
        "uon-micro-001",
        "BSc in Microprocessor Technology and Instrumentation",
        AcademicLevel.BACHELOR,
        Faculty.SCIENCE_TECH,
        4,
        [
            ("uon-mt-101", "Computer Architecture & Organization", "SPM 101",
             "Internal logic of modern processors.",
             "Detailed study of 8086 architecture and bus systems."),
            ("uon-mt-102", "Calculus for Technology I", "SMA 101",
             "Foundational mathematics for engineering logic.",
             "Limits, derivatives, and integral calculus applications."),
            ("uon-mt-201", "Digital Electronics II", "SPM 201",
             "Advanced sequential logic design.",
             "Counters, shift registers, and FPGA basics."),
            ("uon-mt-202", "Data Structures & Algorithms", "SPM 202",
             "Core programming concepts for microprocessor efficiency.",
             "Trees, graphs, and search optimization."),
            ("uon-mt-205", "Electronic Circuits I", "SPM 205",
             "BJT and FET analysis.",
             "Biasing, amplification, and small signal modeling."),
            ("uon-mt-301", "Embedded Systems Design", "SPM 301",
             "SOC and MCU integration.",
             "ARM Cortex-M architecture and real-time constraints."),
            ("uon-mt-305", "Real-time Operating Systems", "SPM 305",
             "Scheduling algorithms and kernel design.",
             "Inter-process communication and task management."),
            ("uon-mt-310", "Digital Signal Processing", "SPM 310",
             "LTI systems and Z-transforms.",
             "FIR/IIR filter design and spectral analysis."),
            ("uon-mt-401", "Microprocessor Interfacing", "SPM 401",
             "Hardware integration protocols.",
             "SPI, I2C, UART and high-speed memory mapping."),
            ("uon-mt-405", "VLSI System Design", "SPM 405",
             "IC fabrication and CMOS logic.",
             "Layout design rules and parasitic extraction."),
            ("uon-mt-410", "Industrial Instrumentation", "SPM 410",
             "Sensor networks and PLC systems.",
             "SCADA, telemetry, and industrial bus standards."),
            ("uon-mt-499", "Final Year Project", "SPM 499",
             "Autonomous research and design.",
             "Full-cycle microprocessor-based solution development."),
        ],
    ),
    _course(
        "uon-physics-001",
        "BSc in Physics",
        AcademicLevel.BACHELOR,
        Faculty.SCIENCE_TECH,
        4,
        [
            ("sph-101", "Mechanics", "SPH 101", "Newtonian principles.",
             "Vectors, kinetics and dynamics."),
            ("sph-201", "Waves and Optics", "SPH 201", "Physical optics and wave phenomena.",
             "Interference, diffraction, and laser physics."),
            ("sph-301", "Quantum Mechanics I", "SPH 301", "Introductory quantum theory.",
             "Schrödinger equation and wavefunctions."),
        ],
    ),
    _course(
        "uon-cs-001",
        "BSc in Computer Science",
        AcademicLevel.BACHELOR,
        Faculty.SCIENCE_TECH,
        4,
        [
            ("ics-101", "Structured Programming", "ICS 101", "Fundamentals of C/C++.",
             "Logic structures, loops, and memory management."),
            ("ics-201", "Object Oriented Programming", "ICS 201", "Java and design patterns.",
             "Inheritance, polymorphism, and abstraction."),
            ("ics-301", "Database Systems", "ICS 301", "Relational database design.",
             "SQL, normalization, and transaction management."),
        ],
    ),
    _course(
        "uon-ds-001",
        "MSc in Data Science",
        AcademicLevel.MASTER,
        Faculty.SCIENCE_TECH,
        2,
        [
            ("ds-501", "Statistical Learning", "CSC 501", "Machine learning foundations.",
             "Regression, classification, and unsupervised learning."),
            ("ds-505", "Big Data Analytics", "CSC 505", "Processing exascale datasets.",
             "Hadoop, Spark, and distributed computing."),
        ],
    ),
    # Faculty of Engineering
    _course(
        "uon-eee-001",
        "BSc in Electrical & Electronic Engineering",
        AcademicLevel.BACHELOR,
        Faculty.ENGINEERING,
        5,
        [
            ("fee-201", "Circuit Theory", "FEE 201", "AC and DC analysis.",
             "Theorems and network analysis."),
            ("fee-301", "Electromagnetics", "FEE 301", "Maxwell equations and wave propagation.",
             "Electrostatics, magnetostatics, and transmission lines."),
            ("fee-401", "Control Engineering I", "FEE 401", "Feedback system analysis.",
             "Laplace transforms, root locus, and Bode plots."),
        ],
    ),
    _course(
        "uon-biomed-001",
        "BSc in Biomedical Engineering",
        AcademicLevel.BACHELOR,
        Faculty.ENGINEERING,
        5,
        [
            ("fbe-301", "Biomedical Instrumentation", "FBE 301", "Medical sensor technology.",
             "ECG, EEG, and imaging systems hardware."),
            ("fbe-401", "Biomechanics", "FBE 401", "Human skeletal and muscular mechanics.",
             "Force analysis and prosthetic design."),
        ],
    ),
    _course(
        "uon-mech-001",
        "BSc in Mechanical Engineering",
        AcademicLevel.BACHELOR,
        Faculty.ENGINEERING,
        5,
        [
            ("fme-201", "Fluid Mechanics", "FME 201", "Statics and dynamics of fluids.",
             "Bernoulli, laminar and turbulent flow."),
            ("fme-301", "Thermodynamics II", "FME 301", "Internal combustion and power cycles.",
             "Rankine, Otto, and Diesel cycles."),
        ],
    ),
    _course(
        "uon-civil-001",
        "BSc in Civil Engineering",
        AcademicLevel.BACHELOR,
        Faculty.ENGINEERING,
        5,
        [
            ("fce-201", "Geomatics", "FCE 201", "Surveying and GIS fundamentals.",
             "Leveling and theodolite operations."),
            ("fce-301", "Structural Analysis", "FCE 301", "Indeterminate structures.",
             "Slope-deflection and moment distribution methods."),
        ],
    ),
    # Faculty of Health Sciences
    _course(
        "uon-med-001",
        "Bachelor of Medicine & Surgery (MBChB)",
        AcademicLevel.BACHELOR,
        Faculty.HEALTH_SCIENCES,
        6,
        [
            ("hme-101", "Human Anatomy", "HME 101", "Gross and neuro-anatomy.",
             "Dissection and structural analysis."),
            ("hme-201", "Medical Biochemistry", "HME 201", "Molecular basis of life.",
             "Metabolism, enzymes, and clinical genetics."),
            ("hme-301", "Pathology", "HME 301", "Study of disease processes.",
             "Cellular injury, inflammation, and neoplasia."),
        ],
    ),
    _course(
        "uon-pharmacy-001",
        "Bachelor of Pharmacy",
        AcademicLevel.BACHELOR,
        Faculty.HEALTH_SCIENCES,
        5,
        [
            ("uon-pha-101", "Pharmaceutics I", "UPH 101", "Drug delivery systems.",
             "Dosage forms and formulation science."),
            ("uon-pha-201", "Pharmacology I", "UPH 201", "Mechanism of drug action.",
             "Pharmacokinetics and pharmacodynamics."),
        ],
    ),
    _course(
        "uon-nursing-001",
        "BSc in Nursing",
        AcademicLevel.BACHELOR,
        Faculty.HEALTH_SCIENCES,
        4,
        [
            ("hns-101", "Fundamentals of Nursing", "HNS 101", "Core patient care.",
             "Ethics and clinical protocols."),
            ("hns-201", "Medical-Surgical Nursing I", "HNS 201", "Adult healthcare management.",
             "Perioperative care and chronic conditions."),
        ],
    ),
    # Research levels
    _course(
        "uon-phd-nano",
        "PhD in Nano-Electronic Instrumentation",
        AcademicLevel.PHD,
        Faculty.SCIENCE_TECH,
        3,
        [
            ("phd-nano-01", "Advanced Semiconductor Physics", "SPM 701",
             "Sub-micron device modeling.",
             "Quantum tunneling and ballistic transport in MOSFETs."),
            ("phd-nano-02", "Research Methodology", "SPM 702", "Advanced academic inquiry.",
             "Quantitative methods for physical sciences."),
        ],
    ),
]


def find_course(course_id: str) -> Optional[Course]:
    return next((c for c in COURSES if c.id == course_id), None)


def find_lesson(course: Course, lesson_id: str) -> Optional[Lesson]:
    return next((lesson for lesson in course.lessons if lesson.id == lesson_id), None)


def courses_by_faculty() -> Dict[Faculty, List[Course]]:
    """Group the catalog by faculty, keeping catalog order within each group."""
    grouped: Dict[Faculty, List[Course]] = {faculty: [] for faculty in Faculty}
    for course in COURSES:
        grouped[course.faculty].append(course)
    return grouped
