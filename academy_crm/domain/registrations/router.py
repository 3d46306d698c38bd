"""Registration router - enrollment of students in cycles"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...audit import audit_context_from_request
from ...auth import manager_or_admin
from ...database import get_db
from ...models import Registration, User
from .schemas import RegistrationCreate, RegistrationResponse, RegistrationUpdate
from .service import RegistrationService

router = APIRouter(tags=["Registrations"])


def get_registration_service(request: Request, db: Session = Depends(get_db)) -> RegistrationService:
    return RegistrationService(db, audit_context_from_request(request))


def to_registration_response(r: Registration) -> RegistrationResponse:
    return RegistrationResponse(
        id=r.id,
        studentId=r.student_id,
        studentName=r.student.name if r.student else None,
        cycleId=r.cycle_id,
        registrationDate=r.registration_date,
        status=r.status,
        amount=r.amount,
        paymentStatus=r.payment_status,
        cancellationDate=r.cancellation_date,
        notes=r.notes,
    )


@router.get("/cycles/{cycle_id}/registrations", response_model=list[RegistrationResponse])
async def list_registrations(
    cycle_id: str,
    current_user: User = Depends(manager_or_admin),
    service: RegistrationService = Depends(get_registration_service),
):
    return [to_registration_response(r) for r in service.list_registrations(cycle_id)]


@router.post("/cycles/{cycle_id}/registrations", response_model=RegistrationResponse, status_code=201)
async def add_registration(
    cycle_id: str,
    data: RegistrationCreate,
    current_user: User = Depends(manager_or_admin),
    service: RegistrationService = Depends(get_registration_service),
):
    return to_registration_response(service.add_registration(cycle_id, data, current_user))


@router.patch("/registrations/{registration_id}", response_model=RegistrationResponse)
async def update_registration(
    registration_id: str,
    data: RegistrationUpdate,
    current_user: User = Depends(manager_or_admin),
    service: RegistrationService = Depends(get_registration_service),
):
    return to_registration_response(service.update_registration(registration_id, data, current_user))


__all__ = ["router"]
