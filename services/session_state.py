"""View state for stepping through an analysis run.

The state is a frozen `ViewState`. Every action is a plain function that
takes the current state and returns the next one, so the flow

	IDLE -> UPLOADED -> PREVIEWING -> ANALYZING -> READY -> IDLE

can be driven and tested without any rendering layer. The cursor is always
clamped to `[0, max(0, len(steps) - 1)]`.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from models.analysis import Analysis, Category, GenerationStep, VisualizationResult
from models.session_models import Session
from utils.errors import InvalidTransition
from utils.media_validation import MAX_UPLOAD_BYTES, validate_image_metadata

HISTORY_LIMIT = 20

Clock = Callable[[], float]


class Phase(str, Enum):
	IDLE = "idle"
	UPLOADED = "uploaded"
	PREVIEWING = "previewing"
	ANALYZING = "analyzing"
	READY = "ready"


@dataclass(frozen=True)
class ViewState:
	"""Everything the client needs to render the current screen."""

	phase: Phase = Phase.IDLE
	filename: Optional[str] = None
	mime_type: Optional[str] = None
	preview_url: str = ""
	original_image_url: str = ""
	final_image_url: str = ""
	analysis: Optional[Analysis] = None
	steps: Tuple[GenerationStep, ...] = ()
	current_index: int = 0
	cache_token: Optional[int] = None
	session_id: Optional[int] = None
	error: Optional[str] = None

	@property
	def can_submit(self) -> bool:
		return self.phase in (Phase.UPLOADED, Phase.PREVIEWING)


def _clamp(index: int, steps: Sequence[GenerationStep]) -> int:
	return max(0, min(index, max(0, len(steps) - 1)))


def _require(state: ViewState, *phases: Phase) -> None:
	if state.phase not in phases:
		allowed = ", ".join(p.value for p in phases)
		raise InvalidTransition(f"Action not allowed in phase '{state.phase.value}' (expected {allowed})")


def select_file(
	state: ViewState,
	filename: str,
	mime_type: Optional[str],
	size: int,
	max_bytes: int = MAX_UPLOAD_BYTES,
) -> ViewState:
	"""Accept a new photo; raises ValidationError for a wrong type or size."""
	if state.phase is Phase.ANALYZING:
		raise InvalidTransition("Cannot select a new file while an analysis is running")
	mime = validate_image_metadata(filename, mime_type, size, max_bytes)
	return replace(
		state,
		phase=Phase.UPLOADED,
		filename=filename,
		mime_type=mime,
		preview_url="",
		error=None,
	)


def show_preview(state: ViewState, preview_url: str) -> ViewState:
	_require(state, Phase.UPLOADED, Phase.PREVIEWING)
	return replace(state, phase=Phase.PREVIEWING, preview_url=preview_url)


def clear_upload(state: ViewState) -> ViewState:
	"""Drop the selected file and its preview."""
	_require(state, Phase.UPLOADED, Phase.PREVIEWING)
	return replace(state, phase=Phase.IDLE, filename=None, mime_type=None, preview_url="", error=None)


def submit(state: ViewState) -> ViewState:
	"""Start the analysis; only one may run at a time."""
	if not state.can_submit:
		raise InvalidTransition(f"Cannot submit from phase '{state.phase.value}'")
	return replace(state, phase=Phase.ANALYZING, original_image_url=state.preview_url, error=None)


def complete(
	state: ViewState,
	analysis: Analysis,
	result: VisualizationResult,
	session_id: Optional[int] = None,
) -> ViewState:
	_require(state, Phase.ANALYZING)
	return replace(
		state,
		phase=Phase.READY,
		analysis=analysis,
		steps=tuple(result.steps),
		final_image_url=result.final_image_ref,
		current_index=0,
		cache_token=None,
		session_id=session_id,
	)


def fail(state: ViewState, message: str) -> ViewState:
	"""Return to the pre-submit phase, keeping the loaded preview."""
	_require(state, Phase.ANALYZING)
	return replace(state, phase=Phase.UPLOADED, error=message)


def _move_to(state: ViewState, index: int, clock: Clock) -> ViewState:
	target = _clamp(index, state.steps)
	if target == state.current_index:
		return state
	return replace(state, current_index=target, cache_token=int(clock() * 1000))


def next_step(state: ViewState, clock: Clock = time.time) -> ViewState:
	if state.phase is not Phase.READY:
		return state
	return _move_to(state, state.current_index + 1, clock)


def previous_step(state: ViewState, clock: Clock = time.time) -> ViewState:
	if state.phase is not Phase.READY:
		return state
	return _move_to(state, state.current_index - 1, clock)


def jump_to_category(state: ViewState, category: Category | str, clock: Clock = time.time) -> ViewState:
	"""Move the cursor to the first step in `category`; no-op when none matches."""
	if state.phase is not Phase.READY:
		return state
	target = Category.coerce(category)
	for position, step in enumerate(state.steps):
		if step.category is target:
			return _move_to(state, position, clock)
	return state


def jump_to_issue(state: ViewState, issue_index: int, clock: Clock = time.time) -> ViewState:
	"""Show the step for the first recommendation sharing the issue's category."""
	if state.phase is not Phase.READY or state.analysis is None:
		return state
	issues = state.analysis.identified_issues
	if not 0 <= issue_index < len(issues):
		return state
	category = issues[issue_index].category
	if not any(rec.category is category for rec in state.analysis.recommendations):
		return state
	return jump_to_category(state, category, clock)


def load_session(state: ViewState, session: Session) -> ViewState:
	"""Show a stored history record."""
	if state.phase is Phase.ANALYZING:
		raise InvalidTransition("Cannot load history while an analysis is running")
	return ViewState(
		phase=Phase.READY,
		original_image_url=session.original_image_ref,
		final_image_url=session.final_image_ref,
		analysis=session.analysis,
		steps=tuple(session.steps),
		session_id=session.id,
	)


def reset(state: ViewState) -> ViewState:
	return ViewState()


def current_step(state: ViewState) -> Optional[GenerationStep]:
	if not state.steps:
		return None
	return state.steps[_clamp(state.current_index, state.steps)]


def active_image_url(state: ViewState) -> str:
	"""Return the image to display, with a cache-busting token after a move."""
	step = current_step(state)
	if step is not None:
		base = step.image_ref
	else:
		base = state.final_image_url or state.original_image_url
	if not base:
		return ""
	base = base.split("?", 1)[0]
	if state.cache_token is None or base.startswith("data:"):
		return base
	return f"{base}?t={state.cache_token}"


def push_history(history: Sequence[Session], session: Session, limit: int = HISTORY_LIMIT) -> List[Session]:
	"""Insert `session` newest-first and drop the oldest entries beyond `limit`."""
	entries = [session] + [item for item in history if item.id != session.id]
	return entries[:limit]


def remove_from_history(history: Sequence[Session], session_id: int) -> List[Session]:
	return [item for item in history if item.id != session_id]
