from __future__ import annotations

from app.crm.models import Client, Lead
from app.platform.security.repository import BaseRepository


# CRM records are reachable only through the unscoped view/manage capabilities;
# the repositories carry the sanitize rule, not ownership.
class ClientRepository(BaseRepository):
    resource = "client"
    model = Client


class LeadRepository(BaseRepository):
    resource = "lead"
    model = Lead
