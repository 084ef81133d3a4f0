"""Prompt builders and persona instructions for every backend stage.

All builders are pure: they never raise and pass unknown or empty values
through verbatim. Validation of what comes back is the extractor's job.
"""

import os
from collections.abc import Sequence
from urllib.parse import quote

from artifex_coach.config import load_persona
from artifex_coach.models.challenge import Challenge

_persona_name = os.getenv("PERSONA_NAME", "default")
try:
    _persona = load_persona(_persona_name)
except FileNotFoundError:
    _persona = {}

MENTOR_INSTRUCTION: str = _persona.get("mentor_instruction") or """\
You are Artifex, an expert AI mentor for CAD, 3D Modeling, and Digital Art.
Your goal is to help users master tools like Blender, Maya, AutoCAD, SolidWorks, and ZBrush.
You are encouraging, precise, and technical when needed.
When guiding a user, assume they want to learn industry-standard workflows.
Always keep answers concise unless asked for a deep dive.
"""

REVIEWER_INSTRUCTION: str = _persona.get("reviewer_instruction") or """\
You are a strict but constructive art and engineering critic.
You analyze images of user submissions against specific criteria.
Provide actionable feedback.
Always answer with the JSON object you are asked for.
"""

MENTOR_GREETING: str = _persona.get("greeting") or (
    "Hi! I'm Artifex. I see what you're working on. How can I help you with this step?"
)

PLACEHOLDER_IMAGE_BASE = "https://placehold.co/600x600/20BEFF/ffffff"

LEARNING_PATH_TEMPLATE = """\
Create a detailed learning path for a {level} student in {domain} using {tool}.
Their specific goal is: "{goal}".

The path should move from basic concepts to an advanced project.
Structure the response as a JSON object strictly matching this schema:
{{
  "title": "string (Creative name for the path)",
  "description": "string (Short overview)",
  "totalXp": number,
  "steps": [
    {{
      "id": "string (unique id)",
      "title": "string",
      "description": "string (detailed instructions)",
      "criteria": ["string", "string"],
      "detailedSteps": ["string (Step 1...)", "string (Step 2...)"],
      "xpReward": number
    }}
  ]
}}

IMPORTANT: Populate "detailedSteps" with 3-5 granular, actionable mini-steps for \
the user to follow to achieve the main description. This is crucial for beginners.
"""

REVIEW_TEMPLATE = """\
Task: Review this user submission for a CAD/Art learning app.
Context: The user was asked to: "{step_description}".
Success Criteria:
{criteria}

Analyze the attached image. Does it meet the criteria?
Start your response with valid JSON:
{{
  "passed": boolean,
  "feedback": "string (constructive feedback, keep it encouraging but strict)"
}}
"""

CHALLENGE_DESIGN_TEMPLATE = """\
Design a fun, daily challenge for a {domain} user using {tool}.
The user is at a {skill_level} level.

Constraints:
- If Beginner: Focus on simple primitives, low poly, basic shapes.
- If Advanced: Focus on complex topology, intricate details, realistic lighting.

Output JSON:
{{
  "title": "string",
  "theme": "string",
  "description": "string",
  "imagePrompt": "string (a descriptive prompt to generate a reference image for this object)",
  "goldTime": number (minutes, aggressive estimate),
  "silverTime": number (minutes, average estimate),
  "bronzeTime": number (minutes, relaxed estimate)
}}
"""

EVALUATION_INSTRUCTIONS: tuple[str, ...] = (
    "Compare these two images. Image 1 is the Reference. Image 2 is the User Submission.",
    "The user is trying to recreate the reference. "
    "Assess the similarity in shape, composition, and key details.",
    "Does the user's work match the reference with at least 85% accuracy or effort? "
    "It does not need to be a pixel-perfect copy, but the subject matter must be the same.",
    'Return JSON: { "passed": boolean, "score": number (0-100), "feedback": "string" }',
)

HINT_TEMPLATE = """\
Give a short, precise technical hint for a user using {tool} to create: "{title}".
Description: {description}.
Focus on a specific workflow, modifier, or shortcut that saves time.
Keep it under 30 words. Do not be generic.
"""

CHAT_CONTEXT_TEMPLATE = """\
[SYSTEM CONTEXT]
User Tool: {tool}
Current Module: {step_title}
Task Description: {step_description}

Please provide specific advice for {tool}. Do NOT include markdown code blocks or \
HTML tags in your response unless absolutely necessary for code snippets. \
Keep the response clean and readable.
[END CONTEXT]

{message}
"""


def build_learning_path_prompt(domain: str, tool: str, goal: str, level: str) -> str:
    """Build the curriculum-design prompt.

    Args:
        domain: Learner's field (Engineering, Digital Art, Architecture).
        tool: Software the learner uses.
        goal: Free-text goal from onboarding.
        level: Skill level label.

    Returns:
        Prompt with the LearningPath JSON shape embedded.
    """
    return LEARNING_PATH_TEMPLATE.format(domain=domain, tool=tool, goal=goal, level=level)


def build_review_prompt(step_description: str, criteria: Sequence[str]) -> str:
    """Build the step-review prompt sent alongside the uploaded image."""
    bullets = "\n".join(f"- {c}" for c in criteria)
    return REVIEW_TEMPLATE.format(step_description=step_description, criteria=bullets)


def build_challenge_design_prompt(domain: str, tool: str, skill_level: str) -> str:
    """Build the daily-challenge brainstorming prompt."""
    return CHALLENGE_DESIGN_TEMPLATE.format(domain=domain, tool=tool, skill_level=skill_level)


def build_evaluation_instructions(challenge: Challenge | None = None) -> list[str]:
    """Instruction texts for comparing a submission against its reference.

    Pass ``challenge`` when the reference image cannot be sent inline; its
    title and description then stand in for the missing image.
    """
    texts = list(EVALUATION_INSTRUCTIONS)
    if challenge is not None:
        texts.append(
            "The reference image is not attached. Judge the single attached image "
            f'against this reference subject: "{challenge.title}" ({challenge.theme}). '
            f"Reference description: {challenge.description}"
        )
    return texts


def build_hint_prompt(tool: str, challenge: Challenge) -> str:
    return HINT_TEMPLATE.format(
        tool=tool, title=challenge.title, description=challenge.description
    )


def build_chat_context(
    tool: str,
    step_title: str | None,
    step_description: str | None,
    message: str,
) -> str:
    """Prefix a chat message with the situational context block.

    The block goes to the model only; the transcript keeps the bare message.
    """
    return CHAT_CONTEXT_TEMPLATE.format(
        tool=tool,
        step_title=step_title or "General",
        step_description=step_description or "N/A",
        message=message,
    )


def build_placeholder_image_url(title: str) -> str:
    """Text-labelled placeholder used when no reference image is rendered."""
    return f"{PLACEHOLDER_IMAGE_BASE}?text={quote(title or '', safe='')}"
