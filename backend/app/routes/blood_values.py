"""Blood test result entry API routes.

The entry form is loaded once per registration, edited client-side, and
posted back for each engine action (value entry, formula calculation,
fill-remainder, suggestions). Every action returns the updated form state
with recomputed group warnings and out-of-range flags. Saving merges the
submitted results into the registration's stored result map.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import verify_bearer_token
from app.database import get_db
from app.repositories.lab import (
    LabRepository,
    PatientNotFoundError,
    RegistrationNotFoundError,
    ResultSaveError,
)
from app.schemas.blood_values import (
    BloodValuesForm,
    CalculateRequest,
    EntryRequest,
    FillRemainderRequest,
    FormStateRequest,
    SaveResultsResponse,
    SuggestionRequest,
    SuggestionResponse,
)
from app.services.result_form import FormActionError, ResultForm

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/registrations", tags=["blood-values"])


def _action_error(exc: FormActionError) -> HTTPException:
    return HTTPException(
        # Literal code: the constant name differs across Starlette releases
        status_code=422,
        detail=str(exc),
    )


@router.get("/{registration_id}/blood-values", response_model=BloodValuesForm)
async def get_blood_values(
    registration_id: int,
    db: AsyncSession = Depends(get_db),
    _operator: str = Depends(verify_bearer_token),
) -> BloodValuesForm:
    """Load the result entry form for a registration.

    Tests are seeded from their catalog definitions with reference ranges
    resolved for the patient and previously saved values filled in.
    """
    repo = LabRepository(db)
    try:
        form, patient = await repo.load_result_form(registration_id)
    except (RegistrationNotFoundError, PatientNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return form.to_response(registration_id, patient=patient)


@router.post("/{registration_id}/blood-values/entry", response_model=BloodValuesForm)
async def enter_value(
    registration_id: int,
    request: EntryRequest,
    _operator: str = Depends(verify_bearer_token),
) -> BloodValuesForm:
    """Apply one input edit. Invalid numeric input leaves the state unchanged."""
    form = ResultForm(request.tests)
    try:
        accepted = form.enter_value(
            request.testIndex,
            request.parameterIndex,
            request.value,
            sub_index=request.subparameterIndex,
        )
    except FormActionError as exc:
        raise _action_error(exc)
    return form.to_response(registration_id, accepted=accepted)


@router.post("/{registration_id}/blood-values/calculate", response_model=BloodValuesForm)
async def calculate_formula(
    registration_id: int,
    request: CalculateRequest,
    _operator: str = Depends(verify_bearer_token),
) -> BloodValuesForm:
    """Recalculate one formula parameter from its current siblings."""
    form = ResultForm(request.tests)
    try:
        form.calculate_formula(request.testIndex, request.parameterIndex)
    except FormActionError as exc:
        raise _action_error(exc)
    return form.to_response(registration_id)


@router.post("/{registration_id}/blood-values/recompute", response_model=BloodValuesForm)
async def recompute_formulas(
    registration_id: int,
    request: FormStateRequest,
    _operator: str = Depends(verify_bearer_token),
) -> BloodValuesForm:
    """Recalculate every formula parameter across all booked tests."""
    form = ResultForm(request.tests)
    updated = form.recompute_all_formulas()
    logger.debug("Recomputed %d formula parameters for registration %s", updated, registration_id)
    return form.to_response(registration_id)


@router.post("/{registration_id}/blood-values/fill-remainder", response_model=BloodValuesForm)
async def fill_remainder(
    registration_id: int,
    request: FillRemainderRequest,
    _operator: str = Depends(verify_bearer_token),
) -> BloodValuesForm:
    """Set the last member of a must-total-100 group to the remainder."""
    form = ResultForm(request.tests)
    try:
        form.fill_remainder(request.testIndex, request.subheadingIndex)
    except FormActionError as exc:
        raise _action_error(exc)
    return form.to_response(registration_id)


@router.post("/{registration_id}/blood-values/suggestions", response_model=SuggestionResponse)
async def get_suggestions(
    registration_id: int,
    request: SuggestionRequest,
    db: AsyncSession = Depends(get_db),
    _operator: str = Depends(verify_bearer_token),
) -> SuggestionResponse:
    """Suggestions for a text parameter from its own list or the shared pool."""
    repo = LabRepository(db)
    form = ResultForm(request.tests, global_pool=await repo.get_autocomplete_values())
    try:
        matches = form.suggest(request.testIndex, request.parameterIndex, request.query)
    except FormActionError as exc:
        raise _action_error(exc)
    return SuggestionResponse(matches=matches)


@router.put("/{registration_id}/blood-values", response_model=SaveResultsResponse)
async def save_blood_values(
    registration_id: int,
    request: FormStateRequest,
    db: AsyncSession = Depends(get_db),
    operator: str = Depends(verify_bearer_token),
) -> SaveResultsResponse:
    """Merge-save the entered results.

    Stored results of tests not in this submission are kept. A failed write
    returns 502 with the underlying message; the client keeps its state and
    may resubmit.
    """
    repo = LabRepository(db)
    try:
        merged, written = await repo.save_results(registration_id, request.tests, entered_by=operator)
    except RegistrationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except ResultSaveError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Save failed: {exc}",
        )
    return SaveResultsResponse(
        registrationId=registration_id,
        savedKeys=written,
        bloodtestDetail=merged,
    )
