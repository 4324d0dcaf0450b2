"""Prompt templates for LLM-based verification and task generation."""

from __future__ import annotations

SYSTEM_PROMPT = """You verify proof of work submitted by people completing paid microtasks.
Judge only against the task's verification criteria.
Approve when the proof clearly satisfies the criteria; reject when it is missing,
unrelated, fabricated or incomplete.
Respond with valid JSON only."""

EVALUATION_TEMPLATE = """Task Title: {task_title}
Task Type: {task_type}
Reward: {reward}

=== DESCRIPTION ===
{task_description}

=== VERIFICATION CRITERIA ===
{verification_criteria}

=== PROOF ({proof_type}) ===
{proof_body}

=== WORKER NOTES ===
{proof_description}

Decide whether this proof satisfies the verification criteria.
Respond with EXACTLY this JSON shape:
{{"approved": <true|false>, "score": <integer 0-100>, "reasoning": "<your explanation>",
"suggestions": ["<optional improvement>", ...]}}"""

IMAGE_PROOF_BODY = "The proof is the attached image."

URL_PROOF_BODY = """Submitted URL: {proof_data}
Check that the URL itself is plausible for the task; you cannot browse it."""

GENERATOR_SYSTEM_PROMPT = """You plan small, independently verifiable microtasks that
humans can complete to help an AI-run project grow.
Every task needs objective verification criteria a reviewer can check from a
screenshot, a URL or a short text.
Respond with valid JSON only."""

GENERATOR_TEMPLATE = """=== PROJECT CONTEXT ===
{project_context}

Create {count} tasks. The total of all rewards must not exceed {budget}.
Each reward must be greater than 0 and at most {max_reward}.
Allowed task types: {task_types}.

Respond with EXACTLY this JSON shape:
{{"tasks": [{{"title": "<short title>", "description": "<what to do>",
"task_type": "<type>", "reward": "<decimal amount>",
"verification_criteria": "<how to verify>"}}]}}"""

ADVISOR_SYSTEM_PROMPT = """You manage the treasury of a project that pays people for
microtasks. Be concise and practical.
Respond with valid JSON only."""

ADVISOR_TEMPLATE = """Current balance: {balance}
Pending payments: {pending_total}
Completed tasks: {completed_tasks}

Assess whether the balance covers the pending payments and how much room is
left for new tasks.

Respond with EXACTLY this JSON shape:
{{"recommendation": "<one or two sentences>",
"suggested_actions": ["<action>", ...],
"health_score": <integer 0-100>}}"""
