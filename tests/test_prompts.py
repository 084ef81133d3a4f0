"""Tests for prompt builders."""

from artifex_coach.ai.prompts import (
    MENTOR_INSTRUCTION,
    build_challenge_design_prompt,
    build_chat_context,
    build_evaluation_instructions,
    build_hint_prompt,
    build_learning_path_prompt,
    build_placeholder_image_url,
    build_review_prompt,
)
from artifex_coach.models.challenge import Challenge


def _challenge() -> Challenge:
    return Challenge(
        title="Teapot",
        theme="Kitchen",
        description="Model a classic teapot",
        gold_time=10,
        silver_time=20,
        bronze_time=30,
    )


def test_learning_path_prompt_embeds_inputs_and_schema():
    prompt = build_learning_path_prompt("Digital Art", "Blender", "Make a robot", "Beginner")
    assert "Beginner student in Digital Art using Blender" in prompt
    assert '"Make a robot"' in prompt
    for field in ('"title"', '"totalXp"', '"steps"', '"criteria"', '"detailedSteps"', '"xpReward"'):
        assert field in prompt


def test_empty_inputs_pass_through():
    prompt = build_learning_path_prompt("", "", "", "")
    assert 'Their specific goal is: "".' in prompt


def test_review_prompt_bullets_criteria():
    prompt = build_review_prompt("Bevel the edges", ["Bevel applied", "No artifacts"])
    assert '"Bevel the edges"' in prompt
    assert "- Bevel applied\n- No artifacts" in prompt
    assert '"passed": boolean' in prompt


def test_challenge_design_prompt_has_conditional_constraints():
    prompt = build_challenge_design_prompt("Engineering", "SolidWorks", "Advanced")
    assert "at a Advanced level" in prompt
    assert "If Beginner: Focus on simple primitives, low poly" in prompt
    assert "If Advanced: Focus on complex topology, intricate details" in prompt
    for field in ("imagePrompt", "goldTime", "silverTime", "bronzeTime"):
        assert f'"{field}"' in prompt


def test_evaluation_instructions_with_and_without_proxy():
    plain = build_evaluation_instructions()
    proxied = build_evaluation_instructions(_challenge())
    assert any("85%" in t for t in plain)
    assert len(proxied) == len(plain) + 1
    assert "Teapot" in proxied[-1]
    assert "Model a classic teapot" in proxied[-1]


def test_hint_prompt():
    prompt = build_hint_prompt("Maya", _challenge())
    assert "using Maya" in prompt
    assert '"Teapot"' in prompt
    assert "under 30 words" in prompt


def test_chat_context_defaults():
    block = build_chat_context("Blender", None, None, "How do I bevel?")
    assert "User Tool: Blender" in block
    assert "Current Module: General" in block
    assert "Task Description: N/A" in block
    assert block.startswith("[SYSTEM CONTEXT]")
    assert block.rstrip().endswith("How do I bevel?")


def test_placeholder_url_encodes_title():
    url = build_placeholder_image_url("Speed Modeling")
    assert url == "https://placehold.co/600x600/20BEFF/ffffff?text=Speed%20Modeling"


def test_mentor_instruction_loaded():
    assert "Artifex" in MENTOR_INSTRUCTION
