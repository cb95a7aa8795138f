"""Pipeline-facing step-up endpoints; the pending challenge id travels as ``AuthState``."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from starlette.datastructures import URL

from smsotp.domain.otp import policy, schemas
from smsotp.domain.otp.models import Directive, DirectiveKind, PipelineContext
from smsotp.domain.otp.service import ENTER_CODE, PROMPT_RESEND, SEND_CODE, ChallengeService
from smsotp.obs import metrics as obs_metrics
from smsotp.settings import settings

router = APIRouter(prefix="/otp", tags=["otp"])

_ROUTE_NAMES = {
	SEND_CODE: "otp_send_code",
	ENTER_CODE: "otp_enter_code",
	PROMPT_RESEND: "otp_prompt_resend",
}


def get_service(request: Request) -> ChallengeService:
	service = getattr(request.app.state, "challenge_service", None)
	if service is None:
		raise policy.ConfigurationError("service_unavailable", "The challenge service is not configured.")
	return service


def _map_error(exc: policy.ChallengePolicyError) -> HTTPException:
	obs_metrics.inc_challenge("error", exc.reason)
	if isinstance(exc, policy.ChallengeNotFound):
		return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)
	if isinstance(exc, policy.InteractionRequired):
		return HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.reason)
	if isinstance(exc, (policy.MissingAttribute, policy.InvalidPhoneNumber)):
		return HTTPException(422, detail=exc.reason)
	if isinstance(exc, policy.InconsistentState):
		return HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)


def _respond(request: Request, directive: Directive) -> Any:
	if directive.kind is DirectiveKind.RENDER:
		return schemas.RenderOut(view=directive.target, AuthState=directive.pending_id or "", data=directive.data)
	if directive.kind is DirectiveKind.RESUME:
		target = URL(settings.pipeline_resume_url).include_query_params(AuthState=directive.pending_id)
		return RedirectResponse(str(target), status_code=status.HTTP_303_SEE_OTHER)
	target = request.url_for(_ROUTE_NAMES[directive.target]).include_query_params(AuthState=directive.pending_id)
	return RedirectResponse(str(target), status_code=status.HTTP_303_SEE_OTHER)


async def _read_fields(request: Request) -> dict[str, Any]:
	content_type = request.headers.get("content-type", "")
	if content_type.startswith("application/json"):
		try:
			body = await request.json()
		except ValueError:
			raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="invalid_json") from None
		return body if isinstance(body, dict) else {}
	if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
		form = await request.form()
		return {key: value for key, value in form.items() if isinstance(value, str)}
	return {}


@router.post("/begin", name="otp_begin")
async def begin(
	request: Request,
	payload: schemas.BeginChallengePayload,
	service: ChallengeService = Depends(get_service),
):
	ctx = PipelineContext(resume_id=payload.resume_id, attributes=payload.attributes, is_passive=payload.is_passive)
	try:
		directive = await service.begin_challenge(ctx)
	except policy.ChallengePolicyError as exc:
		raise _map_error(exc) from None
	return _respond(request, directive)


@router.api_route("/send-code", methods=["GET", "POST"], name="otp_send_code")
async def send_code(
	request: Request,
	AuthState: Optional[str] = Query(default=None),
	service: ChallengeService = Depends(get_service),
):
	try:
		directive = await service.dispatch(AuthState)
	except policy.ChallengePolicyError as exc:
		raise _map_error(exc) from None
	return _respond(request, directive)


@router.get("/enter-code", name="otp_enter_code", response_model=schemas.RenderOut)
async def enter_code(
	request: Request,
	AuthState: Optional[str] = Query(default=None),
	service: ChallengeService = Depends(get_service),
):
	try:
		directive = await service.enter_code(AuthState)
	except policy.ChallengePolicyError as exc:
		raise _map_error(exc) from None
	return _respond(request, directive)


@router.post("/validate-code", name="otp_validate_code")
async def validate_code(
	request: Request,
	AuthState: Optional[str] = Query(default=None),
	service: ChallengeService = Depends(get_service),
):
	fields = await _read_fields(request)
	pending_id = AuthState or fields.get("AuthState")
	code = fields.get("otp")
	try:
		directive = await service.submit(pending_id, None if code is None else str(code))
	except policy.ChallengePolicyError as exc:
		raise _map_error(exc) from None
	return _respond(request, directive)


@router.get("/prompt-resend", name="otp_prompt_resend", response_model=schemas.RenderOut)
async def prompt_resend(
	request: Request,
	AuthState: Optional[str] = Query(default=None),
	service: ChallengeService = Depends(get_service),
):
	try:
		directive = await service.prompt_resend(AuthState)
	except policy.ChallengePolicyError as exc:
		raise _map_error(exc) from None
	return _respond(request, directive)


@router.post("/resend", name="otp_resend")
async def resend(
	request: Request,
	AuthState: Optional[str] = Query(default=None),
	service: ChallengeService = Depends(get_service),
):
	try:
		directive = await service.request_resend(AuthState)
	except policy.ChallengePolicyError as exc:
		raise _map_error(exc) from None
	return _respond(request, directive)
