"""
Classification routes.

Service-to-service entry points for the classification pipeline:
    1. POST /classification/classify - resolve and record a category for one email
    2. POST /classification/evaluate-condition - run the AI condition evaluator

Error bodies always follow {success: false, error: <message>}.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from mailsentry.auth.verify import auth_dependency
from mailsentry.features.classification.api.schemas import (
    ClassifyRequest,
    ClassifyResponse,
    EmailPayload,
    ErrorResponse,
    EvaluateConditionResponse,
)
from mailsentry.features.classification.repository import (
    ClassificationRepository,
    RuleRepository,
)
from mailsentry.features.classification.services import (
    AIConditionEvaluator,
    ClassificationResolver,
    ConfigurationError,
    UpstreamCallError,
    condition_evaluator,
)
from mailsentry.infrastructure.observability.logging import get_logger

router = APIRouter(prefix="/classification", tags=["classification"])
logger = get_logger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_condition_evaluator() -> AIConditionEvaluator:
    return condition_evaluator


def get_classification_resolver(
    evaluator: AIConditionEvaluator = Depends(get_condition_evaluator),
) -> ClassificationResolver:
    return ClassificationResolver(
        rule_store=RuleRepository,
        recorder=ClassificationRepository,
        condition_evaluator=evaluator,
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@router.post("/classify", response_model=ClassifyResponse, responses=ERROR_RESPONSES)
async def classify_email(
    payload: dict[str, Any] | None = Body(None),
    resolver: ClassificationResolver = Depends(get_classification_resolver),
    claims: dict = Depends(auth_dependency),
):
    """
    Classify one inbound email and store the classification record.

    Raises:
        400: malformed body or no categories configured for the mailbox
        500: rules could not be loaded or the record could not be stored
    """
    try:
        request = ClassifyRequest.model_validate(payload or {})
    except ValidationError as e:
        logger.warning("Invalid classify request", error_count=e.error_count())
        return _error(status.HTTP_400_BAD_REQUEST, "Missing or invalid email payload")

    email = request.email.to_domain()
    logger.info("Processing email classification", email_id=email.id, caller=claims.get("sub"))

    try:
        classification = await resolver.resolve(
            email, tenant_id=request.tenant_id, mailbox_id=request.mailbox_id
        )
    except ConfigurationError as e:
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except Exception as e:
        logger.error(
            "Email classification failed",
            email_id=email.id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

    return ClassifyResponse(
        success=True,
        classification=classification.to_dict(),
        message="Email classified successfully",
    )


@router.post(
    "/evaluate-condition", response_model=EvaluateConditionResponse, responses=ERROR_RESPONSES
)
async def evaluate_condition(
    payload: dict[str, Any] | None = Body(None),
    evaluator: AIConditionEvaluator = Depends(get_condition_evaluator),
    claims: dict = Depends(auth_dependency),
):
    """
    Ask the AI backend whether a free-text condition holds for an email.

    Raises:
        400: condition or email missing
        500: AI backend unreachable or misconfigured
    """
    payload = payload or {}
    condition = payload.get("condition")
    raw_email = payload.get("email")

    if not condition or not isinstance(condition, str) or not raw_email:
        return _error(
            status.HTTP_400_BAD_REQUEST, "Missing required fields: condition and email"
        )

    try:
        email = EmailPayload.model_validate(raw_email).to_domain()
    except ValidationError:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid email payload")

    try:
        result = await evaluator.evaluate(condition, email)
    except UpstreamCallError as e:
        logger.error(
            "AI condition evaluation failed",
            email_id=email.id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

    return EvaluateConditionResponse(success=True, result=result.to_dict())
