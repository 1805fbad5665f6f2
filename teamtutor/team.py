"""Simulated project team: roster, step descriptors and prompt builders."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TeamMember:
    role: str
    name: str
    personality: str
    expertise: tuple[str, ...]
    communication_style: str
    work_approach: str
    frameworks: tuple[str, ...]
    persona: str


@dataclass(frozen=True)
class StepContext:
    """Where the learner currently is: task -> subtask -> step."""

    task_id: str
    task_name: str
    task_phase: str = ""
    task_description: str = ""
    subtask_name: str = ""
    subtask_description: str = ""
    step: str = ""
    objective: str = ""
    validation_criteria: tuple[str, ...] = field(default_factory=tuple)


TEAM: tuple[TeamMember, ...] = (
    TeamMember(
        role="Product Owner",
        name="Sarah Chen",
        personality="Business-focused, decisive, user-centric",
        expertise=(
            "Business Analysis",
            "User Experience",
            "Product Strategy",
            "Stakeholder Communication",
        ),
        communication_style="Direct and results-oriented but approachable; speaks in terms of business value.",
        work_approach="Connects every requirement back to business objectives and user value.",
        frameworks=("User Story Mapping", "Impact Mapping", "Kano Model", "Business Model Canvas"),
        persona="Product manager with 8 years in educational technology, focused on student learning outcomes.",
    ),
    TeamMember(
        role="Technical Lead",
        name="Emma Thompson",
        personality="Pragmatic, solution-oriented, quality-focused",
        expertise=(
            "System Architecture",
            "Technical Constraints",
            "Risk Assessment",
            "Performance Requirements",
            "Integration Patterns",
        ),
        communication_style="Practical; translates between technical and business language.",
        work_approach="Weighs feasibility and maintainability and the long-term cost of decisions.",
        frameworks=(
            "TOGAF",
            "Risk Assessment Matrix",
            "Technical Debt Quadrant",
            "Architecture Decision Records",
            "Quality Attribute Scenarios",
        ),
        persona="Software architect with 12 years building scalable educational platforms.",
    ),
    TeamMember(
        role="UX Designer",
        name="David Park",
        personality="Creative, user-empathetic, collaborative",
        expertise=(
            "User Research",
            "Interaction Design",
            "Usability",
            "Design Thinking",
            "Accessibility",
        ),
        communication_style="Visual and story-driven; illustrates points with user scenarios.",
        work_approach="User-centered; advocates for the end user.",
        frameworks=(
            "Design Thinking",
            "User Journey Mapping",
            "Jobs-to-be-Done",
            "Usability Heuristics",
            "Accessibility Guidelines (WCAG)",
        ),
        persona="UX designer with 7 years on educational interfaces, specialised in accessibility.",
    ),
    TeamMember(
        role="Quality Assurance Lead",
        name="Lisa Wang",
        personality="Thorough, quality-focused, risk-aware",
        expertise=(
            "Testing Strategy",
            "Quality Metrics",
            "Requirements Validation",
            "Test Case Design",
            "Defect Management",
        ),
        communication_style="Precise and analytical; probes edge cases and failure scenarios.",
        work_approach="Builds quality in from the requirements phase.",
        frameworks=(
            "ISTQB Testing Principles",
            "Risk-Based Testing",
            "Boundary Value Analysis",
            "Requirements Testability Checklist",
            "Acceptance Criteria Templates",
        ),
        persona="QA lead with 9 years testing educational software, including accessibility compliance.",
    ),
    TeamMember(
        role="Student",
        name="Sarah",
        personality="Curious, collaborative, student-focused",
        expertise=(
            "Student Perspective",
            "User Needs Assessment",
            "Learning Experience",
            "Student Requirements",
            "Educational Technology",
        ),
        communication_style="Enthusiastic and relatable; speaks from personal experience.",
        work_approach="Checks that solutions meet real student needs.",
        frameworks=(
            "Design Thinking",
            "User-Centered Design",
            "Persona Development",
            "Student Journey Mapping",
            "Learning Experience Design",
        ),
        persona="Junior computer science student who uses learning platforms daily.",
    ),
    TeamMember(
        role="Lecturer",
        name="Julson",
        personality="Knowledgeable, pedagogical, technology-embracing",
        expertise=(
            "Educational Technology",
            "Curriculum Design",
            "Student Learning Analytics",
            "Digital Learning Platforms",
            "Academic Requirements",
        ),
        communication_style="Thoughtful; relates technology to learning outcomes.",
        work_approach="Looks for ways technology improves learning experiences.",
        frameworks=(
            "Bloom's Taxonomy",
            "Learning Management Systems",
            "Educational Technology Standards",
            "Instructional Design Models",
            "Student-Centered Learning",
        ),
        persona="Computer science lecturer with 15 years integrating technology into teaching.",
    ),
    TeamMember(
        role="Academic Advisor",
        name="Kalle",
        personality="Supportive, organized, student-focused",
        expertise=(
            "Student Support Services",
            "Academic Planning",
            "Campus Resources",
            "Student Success Strategies",
            "Educational Technology Integration",
        ),
        communication_style="Empathetic and solution-oriented.",
        work_approach="Considers academic and personal factors behind student success.",
        frameworks=(
            "Student Success Models",
            "Academic Intervention Strategies",
            "Campus Resource Mapping",
            "Student Support Systems",
            "Retention and Engagement Strategies",
        ),
        persona="Academic advisor with 12 years connecting students with support and technology resources.",
    ),
)

_BY_ROLE = {m.role.lower(): m for m in TEAM}


def get_member(role: str) -> TeamMember:
    """Look up a team member by role (case-insensitive). Raises ``KeyError``."""
    try:
        return _BY_ROLE[role.strip().lower()]
    except KeyError:
        raise KeyError(f"unknown team role: {role!r}") from None


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------


def standalone_question_prompt(message: str, history: str = "") -> str:
    context = f"CONVERSATION CONTEXT:\n{history}\n\n" if history.strip() else ""
    return (
        "You rewrite conversational messages into clear, standalone questions for "
        "information retrieval.\n\n"
        "GUIDELINES:\n"
        "1. Drop greetings and filler words\n"
        "2. Resolve pronouns so the question stands on its own\n"
        "3. Keep the original intent\n"
        "4. If the message is already a standalone question, return it unchanged\n\n"
        f"{context}"
        f'USER MESSAGE: "{message}"\n\n'
        "STANDALONE QUESTION:"
    )


def _colleagues(member: TeamMember) -> str:
    return "\n".join(
        f"- {m.name} ({m.role}): {', '.join(m.expertise[:2])}" for m in TEAM if m.role != member.role
    )


def team_member_prompt(
    member: TeamMember,
    step: StepContext,
    *,
    retrieved_context: str,
    question: str,
    standalone_question: str,
    summary: str = "",
    history: str = "",
    insights: str = "",
) -> str:
    parts = [
        f"You are {member.name}, a {member.role} with expertise in {', '.join(member.expertise)}.",
        "",
        "Base your answers ONLY on the RELEVANT PROJECT INFORMATION below. If it does not "
        "cover the question, say that you need more project-specific information.",
        "",
        f"PERSONAL PROFILE:\n{member.persona}",
        f"COMMUNICATION STYLE: {member.communication_style}",
        f"WORK APPROACH: {member.work_approach}",
        f"PREFERRED FRAMEWORKS: {', '.join(member.frameworks)}",
        "",
        "STUDENT'S QUESTION:",
        f'Original: "{question}"',
        f'Clarified: "{standalone_question}"',
        "",
        "RELEVANT PROJECT INFORMATION (YOUR ONLY KNOWLEDGE SOURCE):",
        retrieved_context or "No specific project context found for this question.",
        "",
        f"CURRENT LEARNING TASK: {step.task_name}",
    ]
    if step.task_phase:
        parts.append(f"Task Phase: {step.task_phase}")
    if step.step:
        parts.append(f"CURRENT STEP: {step.step} (subtask: {step.subtask_name})")
    if step.objective:
        parts.append(f"Step objective: {step.objective}")
    if step.validation_criteria:
        parts.append(f"Validation criteria: {', '.join(step.validation_criteria)}")
    if summary:
        parts += ["", f"CONVERSATION SUMMARY:\n{summary}"]
    if history:
        parts += ["", f"RECENT CONVERSATION:\n{history}"]
    if insights:
        parts += ["", f"NOTES FROM EARLIER SESSIONS:\n{insights}"]
    parts += [
        "",
        f"TEAM COLLEAGUES:\n{_colleagues(member)}",
        "",
        "INTERACTION GUIDELINES:",
        "- Stay within the provided project context; ask for clarification rather than guess",
        f"- Do not hand out the answer for {step.step or 'this step'}; guide the student towards "
        f"the objective{': ' + step.objective if step.objective else ''}",
        "- Suggest a colleague by name when their expertise is relevant",
        "- Build on earlier conversation points without repeating them",
    ]
    return "\n".join(parts)


def validation_prompt(step: StepContext, retrieved_context: str) -> str:
    criteria = ", ".join(step.validation_criteria) or "(none provided)"
    return (
        f"You are an expert Requirements Engineering instructor evaluating student submissions "
        f"of {step.step or step.task_name}.\n\n"
        "Evaluate ONLY against the validation criteria and the project context below.\n\n"
        f"CURRENT TASK: {step.task_name}\n"
        f"Task Description: {step.task_description}\n"
        f"Subtask Name: {step.subtask_name}\n"
        f"Subtask Description: {step.subtask_description}\n\n"
        f"VALIDATION CRITERIA:\n{criteria}\n\n"
        f"RELEVANT PROJECT CONTEXT:\n{retrieved_context or 'No specific project context found.'}\n\n"
        "FORMAT YOUR RESPONSE AS:\n"
        "SCORE: [0-100]\n"
        "FEEDBACK: [short, concrete feedback based on the project context]\n"
        "RECOMMENDATIONS: [specific suggestions or next steps]"
    )


__all__ = [
    "TeamMember",
    "StepContext",
    "TEAM",
    "get_member",
    "standalone_question_prompt",
    "team_member_prompt",
    "validation_prompt",
]
