"""AI extraction adapter - turns a task-creation chat into a structured pipeline proposal."""

import json
import os
import time
from datetime import date
from typing import Optional

from langchain_anthropic import ChatAnthropic
from langchain_openai import ChatOpenAI
from pydantic import ValidationError as PydanticValidationError

from src.models.extraction import (
    ChatMessage,
    ExtractedStep,
    ExtractedTaskData,
    FundamentalSheet,
    MatchedMember,
    ReadyExtraction,
    SheetExtraction,
    SheetStep,
    SmartExtractionResult,
)
from src.models.member import Member
from src.models.pipeline_step import PipelineStep, StepStatus
from src.models.task import Task
from src.services.member_directory import match_name_to_member
from src.utils.dates import format_date, utc_now
from src.utils.errors import UpstreamFailureError, ValidationError
from src.utils.logging import (
    get_correlation_id,
    get_structured_logger,
    log_timing,
    sanitize_message_text,
)

logger = get_structured_logger(__name__)

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
}


def parse_chat_messages(raw) -> list[ChatMessage]:
    """Validate a client transcript. At least one message is required."""
    if not isinstance(raw, list) or not raw:
        raise ValidationError("messages must be a non-empty list")
    try:
        return [ChatMessage.model_validate(item) for item in raw]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid chat message: {e.error_count()} errors")


def task_to_fundamental_sheet(
    task: Task,
    steps: list[PipelineStep],
    member_names: Optional[dict[str, str]] = None,
) -> FundamentalSheet:
    """Normalized view of a persisted task used as edit-mode context."""
    member_names = member_names or {}
    sheet_steps = []
    for step in sorted(steps, key=lambda s: s.step_order):
        who = member_names.get(step.assigned_to) if step.assigned_to else None
        sheet_steps.append(
            SheetStep(
                step_id=step.id,
                order=step.step_order,
                what=step.name,
                who=who or step.assigned_to_name,
                who_id=step.assigned_to,
                by_when=format_date(step.mini_deadline),
                status="completed" if step.status == StepStatus.COMPLETED else "pending",
                completed_at=step.completed_at,
            )
        )
    return FundamentalSheet(
        task_id=task.id,
        title=task.title,
        steps=sheet_steps,
        overall_deadline=format_date(task.deadline),
    )


def build_system_prompt(
    roster: list[Member],
    existing_sheet: Optional[FundamentalSheet] = None,
    today: Optional[date] = None,
) -> str:
    """Build the extraction instructions, with the sheet under edit when given."""
    today = today or utc_now().date()
    team_names = ", ".join(member.name for member in roster) or "(no members yet)"

    prompt = f"""You help a team turn a conversation into a task pipeline: a title and an
ordered list of steps, each done by one person (or one of several people) by a date.

Today is {today.isoformat()} ({today.strftime("%A")}). Resolve relative dates against today.
Team members: {team_names}

Fundamental sheet
- title: short Title Case name of the task
- steps: in order, each with
  - what: the action, sentence case
  - who: the person's name exactly as the user wrote it, null if nobody was named
  - by_when: YYYY-MM-DD or null
- overall_deadline: YYYY-MM-DD, usually the last step's date
- summary: one sentence describing the workflow, 150 characters max

Joint steps
- "X or Y", "X/Y" and "either X or Y" mean any one of them may do the step.
  Set is_joint true, who to the first name and who_alternatives to every name in order.

Recurrence
- Only set recurrence when the user asks for a repeating task
  (daily, weekly or monthly, with an interval of 1 or more).

Response
- kind "ready" when the user confirmed or every step has a clear action. A ready
  reply must have a title and at least one step.
- kind "needs_clarification" otherwise. Ask one short question in ai_message and
  keep whatever you already understood in title and steps.
- ai_message is always a brief, friendly reply to the user.
- Never invent people or dates the user did not give."""

    if existing_sheet:
        prompt += f"""

Edit mode
You are editing an existing task. Current fundamental sheet:
{existing_sheet.model_dump_json(indent=2)}

- Steps with status "completed" are finished. Keep them exactly as they are,
  in place, with status "completed".
- Apply the user's requested changes to the pending steps only.
- Return the complete sheet, not just the changes."""

    return prompt


def get_llm_model():
    """Get configured chat model."""
    provider = os.environ.get("LLM_PROVIDER", "anthropic").lower()
    model_name = os.environ.get("LLM_MODEL") or DEFAULT_MODELS.get(provider)
    temperature = float(os.environ.get("LLM_TEMPERATURE", "0.3"))

    logger.debug("Getting LLM model", llm_provider=provider, llm_model=model_name)

    if provider == "anthropic":
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise UpstreamFailureError("ANTHROPIC_API_KEY not set")
        return ChatAnthropic(model=model_name, api_key=api_key, temperature=temperature)
    elif provider == "openai":
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise UpstreamFailureError("OPENAI_API_KEY not set")
        return ChatOpenAI(model=model_name, api_key=api_key, temperature=temperature)
    else:
        raise UpstreamFailureError(f"Unsupported LLM provider: {provider}")


def parse_extraction(payload) -> SheetExtraction:
    """
    Validate raw model output into a SheetExtraction.

    Accepts the envelope itself, a bare ready/needs_clarification object, or
    text containing one JSON object. Anything else is an upstream failure.
    """
    if isinstance(payload, SheetExtraction):
        return payload
    if isinstance(payload, str):
        start_idx = payload.find("{")
        end_idx = payload.rfind("}") + 1
        if start_idx < 0 or end_idx <= start_idx:
            raise UpstreamFailureError("No JSON found in LLM response")
        try:
            payload = json.loads(payload[start_idx:end_idx])
        except json.JSONDecodeError as e:
            raise UpstreamFailureError(f"Failed to parse LLM response: {e}")
    if not isinstance(payload, dict):
        raise UpstreamFailureError("LLM response is not an object")
    if "result" not in payload:
        payload = {"result": payload}
    try:
        return SheetExtraction.model_validate(payload)
    except PydanticValidationError as e:
        raise UpstreamFailureError(f"LLM response does not match the extraction schema: {e.error_count()} errors")


async def request_extraction(
    messages: list[ChatMessage],
    roster: list[Member],
    existing_sheet: Optional[FundamentalSheet] = None,
) -> SheetExtraction:
    """Send the transcript to the chat model and return its validated reply."""
    model = get_llm_model()
    prompt = [("system", build_system_prompt(roster, existing_sheet))]
    prompt.extend((message.role, message.content) for message in messages)

    correlation_id = get_correlation_id()
    llm_start_time = time.time()
    try:
        try:
            structured_llm = model.with_structured_output(SheetExtraction)
            raw = await structured_llm.ainvoke(prompt)
        except (AttributeError, NotImplementedError):
            response = await model.ainvoke(prompt)
            raw = response.content if hasattr(response, "content") else str(response)
    except UpstreamFailureError:
        raise
    except Exception as e:
        logger.error("LLM request failed", correlation_id=correlation_id, error=str(e), exc_info=True)
        raise UpstreamFailureError(f"LLM request failed: {e}")

    extraction = parse_extraction(raw)
    logger.info(
        "LLM extraction response received",
        correlation_id=correlation_id,
        llm_latency_ms=round((time.time() - llm_start_time) * 1000, 2),
        kind=extraction.result.kind,
        steps_count=len(extraction.result.steps),
    )
    return extraction


def normalize_extraction(extraction: SheetExtraction, roster: list[Member]) -> SmartExtractionResult:
    """Map the model's sheet onto our task shape and resolve names against the roster."""
    sheet = extraction.result
    ready = isinstance(sheet, ReadyExtraction)

    steps: list[ExtractedStep] = []
    matched: list[MatchedMember] = []
    unmatched: list[str] = []

    def resolve(index: int, name: str, is_alternative: bool) -> None:
        member = match_name_to_member(name, roster)
        if member:
            matched.append(
                MatchedMember(
                    step_index=index,
                    extracted_name=name,
                    member_id=member.id,
                    member_name=member.name,
                    is_alternative=is_alternative,
                )
            )
        elif name not in unmatched:
            unmatched.append(name)

    for index, sheet_step in enumerate(sheet.steps):
        alternatives = [name.strip() for name in (sheet_step.who_alternatives or []) if name and name.strip()]
        primary = sheet_step.who.strip() if sheet_step.who and sheet_step.who.strip() else None
        if not primary and alternatives:
            primary = alternatives[0]
        is_joint = sheet_step.is_joint and len(alternatives) > 1

        if primary:
            resolve(index, primary, is_alternative=False)
        if is_joint:
            for name in alternatives:
                if name.lower() != primary.lower():
                    resolve(index, name, is_alternative=True)

        steps.append(
            ExtractedStep(
                name=sheet_step.what,
                assigned_to_name=primary,
                additional_assignee_names=alternatives if is_joint else [],
                is_joint=is_joint,
                mini_deadline=sheet_step.by_when,
                status=sheet_step.status,
            )
        )

    deadline = sheet.overall_deadline
    if not deadline:
        deadline = next((step.mini_deadline for step in reversed(steps) if step.mini_deadline), None)

    data = ExtractedTaskData(
        title=sheet.title or "Untitled Task",
        summary=sheet.summary,
        deadline=deadline,
        recurrence=sheet.recurrence,
        pipeline_steps=steps,
        confidence="high" if ready else "medium",
    )

    return SmartExtractionResult(
        extracted_data=data,
        matched_members=matched,
        unmatched_names=unmatched,
        ai_message=sheet.ai_message,
        ready_to_create=ready,
        suggested_new_members=list(unmatched),
    )


async def process_task_chat(
    messages: list[ChatMessage],
    roster: list[Member],
    existing_sheet: Optional[FundamentalSheet] = None,
) -> SmartExtractionResult:
    """Run one chat turn: call the model, then normalize and match names."""
    last_user = next((m.content for m in reversed(messages) if m.role == "user"), "")
    logger.info(
        "Task chat started",
        messages_count=len(messages),
        roster_size=len(roster),
        edit_mode=existing_sheet is not None,
        message_preview=sanitize_message_text(last_user, max_length=100),
    )

    with log_timing("task_extraction", logger=logger):
        extraction = await request_extraction(messages, roster, existing_sheet)

    result = normalize_extraction(extraction, roster)
    logger.info(
        "Task chat processed",
        ready_to_create=result.ready_to_create,
        steps_count=len(result.extracted_data.pipeline_steps),
        matched_count=len(result.matched_members),
        unmatched_count=len(result.unmatched_names),
    )
    return result
