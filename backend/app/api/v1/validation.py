"""Document rule validation endpoint — identifier format and expiry window."""

from fastapi import APIRouter, Depends

from app.dependencies import ClientIdentity, get_current_client, get_validation_service
from app.schemas.validation import (
    DocumentValidationRequest,
    DocumentValidationResponse,
    ExpiryVerdict,
    ValidationVerdict,
)
from app.validation.service import DocumentValidationService

router = APIRouter()


@router.post("/document", response_model=DocumentValidationResponse)
async def validate_document(
    body: DocumentValidationRequest,
    identity: ClientIdentity = Depends(get_current_client),
    validator: DocumentValidationService = Depends(get_validation_service),
) -> DocumentValidationResponse:
    result = validator.validate(
        identifier=body.identifier,
        issue_date=body.issue_date,
        expiry_date=body.expiry_date,
    )
    return DocumentValidationResponse(
        identifier=ValidationVerdict(**vars(result.identifier)),
        expiry=ExpiryVerdict(**vars(result.expiry)),
        overall=ValidationVerdict(**vars(result.overall)),
    )
