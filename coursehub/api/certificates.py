import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.api.base import CamelModel, Message
from coursehub.core.auth import Role, TokenData, admin_only, get_current_user
from coursehub.core.database import get_db
from coursehub.models.orm import Certificate
from coursehub.services import certificates as certificate_service

logger = logging.getLogger(__name__)

router = APIRouter()


class CourseRef(CamelModel):
    id: int
    title: str


class CertificateOut(CamelModel):
    id: int
    user_id: int
    course_id: int
    certificate_number: str
    issued_at: datetime
    course: Optional[CourseRef] = None


class IssueRequest(CamelModel):
    course_id: int


class IssueResult(CamelModel):
    certificate: CertificateOut
    already_exists: bool


class VerifiedCertificate(CamelModel):
    certificate_number: str
    course_name: str
    student_name: Optional[str] = None
    issued_at: datetime


class VerifyResult(CamelModel):
    valid: bool
    certificate: Optional[VerifiedCertificate] = None


def certificate_or_404(db: Session, certificate_id: int) -> Certificate:
    certificate = db.get(Certificate, certificate_id)
    if not certificate:
        raise HTTPException(404, "Certificate not found")
    return certificate


@router.get("/me", response_model=List[CertificateOut])
def my_certificates(current: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    return db.scalars(
        select(Certificate).where(Certificate.user_id == current.user_id)
        .order_by(Certificate.issued_at.desc(), Certificate.id.desc())
    ).all()


@router.get("/verify/{certificate_number}", response_model=VerifyResult)
def verify_certificate(certificate_number: str, db: Session = Depends(get_db)):
    certificate = db.scalar(select(Certificate).where(Certificate.certificate_number == certificate_number))
    if not certificate:
        return JSONResponse(status_code=404, content={"valid": False, "error": "Certificate not found"})
    profile = certificate.user.profile
    return VerifyResult(
        valid=True,
        certificate=VerifiedCertificate(
            certificate_number=certificate.certificate_number,
            course_name=certificate.course.title,
            student_name=profile.full_name if profile else None,
            issued_at=certificate.issued_at,
        ),
    )


@router.post("/check-and-issue", response_model=IssueResult)
def check_and_issue(payload: IssueRequest, response: Response, current: TokenData = Depends(get_current_user),
                    db: Session = Depends(get_db)):
    certificate, already_exists = certificate_service.check_and_issue(db, current.user_id, payload.course_id)
    response.status_code = 200 if already_exists else 201
    return IssueResult(certificate=CertificateOut.model_validate(certificate), already_exists=already_exists)


@router.get("", response_model=List[CertificateOut], dependencies=[Depends(admin_only)])
def list_certificates(db: Session = Depends(get_db)):
    return db.scalars(select(Certificate).order_by(Certificate.issued_at.desc(), Certificate.id.desc())).all()


@router.get("/{certificate_id}", response_model=CertificateOut)
def get_certificate(certificate_id: int, current: TokenData = Depends(get_current_user),
                    db: Session = Depends(get_db)):
    certificate = certificate_or_404(db, certificate_id)
    if certificate.user_id != current.user_id and not current.has_any(Role.ADMIN):
        raise HTTPException(403, "Access denied")
    return certificate


@router.delete("/{certificate_id}", response_model=Message, dependencies=[Depends(admin_only)])
def delete_certificate(certificate_id: int, db: Session = Depends(get_db)):
    certificate = certificate_or_404(db, certificate_id)
    db.delete(certificate)
    db.commit()
    logger.info(f"Deleted certificate {certificate.certificate_number}")
    return Message(message="Certificate deleted successfully")
