"""Session history lookups for the web client."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import HTTPException, Request

from dal.history_dal import HistoryDAL
from models.session_models import Session
from services.planner.report import build_report_text


def _history(request: Request) -> HistoryDAL:
	return request.app.state.history_dal


async def _require_session(request: Request, session_id: int) -> Session:
	session = await _history(request).get(session_id)
	if session is None:
		raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
	return session


async def list_sessions(request: Request) -> List[Dict[str, Any]]:
	"""Return all stored sessions, newest first."""
	return [session.to_dict() for session in await _history(request).load()]


async def get_session(request: Request, session_id: int) -> Dict[str, Any]:
	session = await _require_session(request, session_id)
	return session.to_dict()


async def delete_session(request: Request, session_id: int) -> Dict[str, Any]:
	"""Remove a session from history; its image files are left to the cleanup sweep."""
	if not await _history(request).delete(session_id):
		raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
	return {"id": session_id, "deleted": True}


async def session_report(request: Request, session_id: int) -> str:
	"""Return the plain-text analysis report for a stored session."""
	session = await _require_session(request, session_id)
	return build_report_text(session.analysis)
