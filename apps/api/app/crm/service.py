from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.crm.models import Client, Inquiry, Lead
from app.crm.repositories import ClientRepository, LeadRepository
from app.crm.schemas import (
    ClientCreate,
    ClientRead,
    ClientUpdate,
    InquiryCreate,
    LeadConvertRequest,
    LeadCreate,
    LeadRead,
    LeadUpdate,
)
from app.platform.security.errors import ResourceNotFound
from app.platform.security.roles import Role


logger = logging.getLogger("app.crm")


def _apply_changes(record: Any, changes: dict[str, Any]) -> None:
    for field_name, value in changes.items():
        if field_name == "email" and value is not None:
            value = str(value).lower()
        setattr(record, field_name, value)


class ClientService:
    repository = ClientRepository()

    def list_clients(self, session: Session, role: Role, *, status_filter: str | None = None, q: str | None = None) -> list[dict[str, Any]]:
        stmt = select(Client).order_by(Client.created_at.desc())
        if status_filter:
            stmt = stmt.where(Client.status == status_filter)
        if q:
            pattern = f"%{q}%"
            stmt = stmt.where(or_(Client.name.ilike(pattern), Client.email.ilike(pattern), Client.company.ilike(pattern)))
        records = [self._to_read(item) for item in session.scalars(stmt).all()]
        return self.repository.apply_read_security_many(records, role)

    def get_client(self, session: Session, role: Role, client_id: uuid.UUID) -> dict[str, Any]:
        return self.secured_read(self._load(session, client_id), role)

    def create_client(self, session: Session, role: Role, dto: ClientCreate) -> dict[str, Any]:
        client = Client()
        _apply_changes(client, dto.model_dump())
        session.add(client)
        session.commit()
        session.refresh(client)
        return self.secured_read(client, role)

    def update_client(self, session: Session, role: Role, client_id: uuid.UUID, dto: ClientUpdate) -> dict[str, Any]:
        client = self._load(session, client_id)
        _apply_changes(client, dto.model_dump(exclude_unset=True))
        session.commit()
        session.refresh(client)
        return self.secured_read(client, role)

    def _load(self, session: Session, client_id: uuid.UUID) -> Client:
        client = session.get(Client, client_id)
        if client is None:
            raise ResourceNotFound("Client")
        return client

    def secured_read(self, client: Client, role: Role) -> dict[str, Any]:
        secured = self.repository.apply_read_security(self._to_read(client), role)
        return secured if secured is not None else {}

    @staticmethod
    def _to_read(client: Client) -> dict[str, Any]:
        return ClientRead.model_validate(client).model_dump(mode="json")


class LeadService:
    repository = LeadRepository()

    def list_leads(self, session: Session, role: Role, *, status_filter: str | None = None) -> list[dict[str, Any]]:
        stmt = select(Lead).order_by(Lead.created_at.desc())
        if status_filter:
            stmt = stmt.where(Lead.status == status_filter)
        records = [self._to_read(item) for item in session.scalars(stmt).all()]
        return self.repository.apply_read_security_many(records, role)

    def get_lead(self, session: Session, role: Role, lead_id: uuid.UUID) -> dict[str, Any]:
        return self._secured(self._load(session, lead_id), role)

    def create_lead(self, session: Session, role: Role, dto: LeadCreate) -> dict[str, Any]:
        lead = Lead()
        _apply_changes(lead, dto.model_dump())
        session.add(lead)
        session.commit()
        session.refresh(lead)
        return self._secured(lead, role)

    def update_lead(self, session: Session, role: Role, lead_id: uuid.UUID, dto: LeadUpdate) -> dict[str, Any]:
        lead = self._load(session, lead_id)
        _apply_changes(lead, dto.model_dump(exclude_unset=True))
        session.commit()
        session.refresh(lead)
        return self._secured(lead, role)

    def convert_lead(self, session: Session, role: Role, lead_id: uuid.UUID, dto: LeadConvertRequest) -> dict[str, Any]:
        """Create a Client from the lead, carrying its portal ``user_id`` across.

        Keeping ``user_id`` means a client who could see their quotes through
        the lead keeps seeing them, and new records attach through the client.
        """

        lead = self._load(session, lead_id)
        if lead.status == "converted":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Lead already converted")

        client = Client(
            user_id=lead.user_id,
            lead_id=lead.id,
            account_manager_id=dto.account_manager_id or lead.assigned_to_id,
            name=lead.name,
            email=lead.email,
            phone=lead.phone,
            company=lead.company,
            address=lead.address,
            status=dto.status,
        )
        lead.status = "converted"
        session.add(client)
        session.commit()
        logger.info("lead_converted", extra={"entity_type": "lead", "entity_id": str(lead.id)})
        session.refresh(client)
        return client_service.secured_read(client, role)

    def _load(self, session: Session, lead_id: uuid.UUID) -> Lead:
        lead = session.get(Lead, lead_id)
        if lead is None:
            raise ResourceNotFound("Lead")
        return lead

    def _secured(self, lead: Lead, role: Role) -> dict[str, Any]:
        secured = self.repository.apply_read_security(self._to_read(lead), role)
        return secured if secured is not None else {}

    @staticmethod
    def _to_read(lead: Lead) -> dict[str, Any]:
        return LeadRead.model_validate(lead).model_dump(mode="json")


class InquiryService:
    def submit(self, session: Session, dto: InquiryCreate) -> Inquiry:
        inquiry = Inquiry(**dto.model_dump())
        inquiry.email = inquiry.email.lower()
        session.add(inquiry)
        session.commit()
        session.refresh(inquiry)
        return inquiry

    def list_inquiries(self, session: Session, *, status_filter: str | None = None) -> list[Inquiry]:
        stmt = select(Inquiry).order_by(Inquiry.created_at.desc())
        if status_filter:
            stmt = stmt.where(Inquiry.status == status_filter)
        return list(session.scalars(stmt).all())

    def convert_to_lead(self, session: Session, inquiry_id: uuid.UUID) -> Lead:
        inquiry = session.get(Inquiry, inquiry_id)
        if inquiry is None:
            raise ResourceNotFound("Inquiry")
        if inquiry.converted_lead_id is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Inquiry already converted")

        lead = Lead(
            source="referral" if inquiry.type == "referral" else "inquiry",
            inquiry_id=inquiry.id,
            name=inquiry.name,
            email=inquiry.email,
            phone=inquiry.phone,
            company=inquiry.company,
            service_type=inquiry.service_type,
            address=inquiry.address,
            notes=inquiry.description,
        )
        session.add(lead)
        session.flush()
        inquiry.converted_lead_id = lead.id
        inquiry.status = "converted"
        session.commit()
        session.refresh(lead)
        return lead


client_service = ClientService()
lead_service = LeadService()
inquiry_service = InquiryService()
