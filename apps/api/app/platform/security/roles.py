from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    CLIENT = "client"
    EMPLOYEE = "employee"
    SALES = "sales"
    PROJECT_MANAGER = "project_manager"
    MANAGER = "manager"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str | None) -> Role | None:
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class Capability(StrEnum):
    # service requests
    VIEW_OWN_REQUESTS = "view_own_requests"
    VIEW_ALL_REQUESTS = "view_all_requests"
    CREATE_REQUESTS = "create_requests"
    EDIT_OWN_REQUESTS = "edit_own_requests"
    EDIT_ALL_REQUESTS = "edit_all_requests"
    DELETE_REQUESTS = "delete_requests"

    # projects
    VIEW_OWN_PROJECTS = "view_own_projects"
    VIEW_ALL_PROJECTS = "view_all_projects"
    MANAGE_OWN_PROJECTS = "manage_own_projects"
    MANAGE_ALL_PROJECTS = "manage_all_projects"
    ASSIGN_PROJECTS = "assign_projects"
    COMMENT_OWN_PROJECTS = "comment_own_projects"
    SUBMIT_PROJECT_FEEDBACK = "submit_project_feedback"

    # tasks
    VIEW_OWN_TASKS = "view_own_tasks"
    VIEW_ALL_TASKS = "view_all_tasks"
    MANAGE_OWN_TASKS = "manage_own_tasks"
    MANAGE_ALL_TASKS = "manage_all_tasks"

    # tickets
    VIEW_OWN_TICKETS = "view_own_tickets"
    VIEW_ALL_TICKETS = "view_all_tickets"
    MANAGE_OWN_TICKETS = "manage_own_tickets"
    MANAGE_ALL_TICKETS = "manage_all_tickets"

    # reports
    VIEW_OWN_REPORTS = "view_own_reports"
    VIEW_ALL_REPORTS = "view_all_reports"
    MANAGE_OWN_REPORTS = "manage_own_reports"
    MANAGE_ALL_REPORTS = "manage_all_reports"
    APPROVE_REPORTS = "approve_reports"

    # inventory and suppliers
    VIEW_INVENTORY = "view_inventory"
    MANAGE_INVENTORY = "manage_inventory"
    VIEW_SUPPLIERS = "view_suppliers"
    MANAGE_SUPPLIERS = "manage_suppliers"

    # communications
    VIEW_OWN_MESSAGES = "view_own_messages"
    VIEW_ALL_MESSAGES = "view_all_messages"
    MANAGE_MESSAGES = "manage_messages"

    # crm
    VIEW_CLIENTS = "view_clients"
    MANAGE_CLIENTS = "manage_clients"
    VIEW_LEADS = "view_leads"
    MANAGE_LEADS = "manage_leads"
    VIEW_VISITORS = "view_visitors"

    # quotes and invoices
    VIEW_OWN_QUOTES = "view_own_quotes"
    VIEW_ALL_QUOTES = "view_all_quotes"
    MANAGE_QUOTES = "manage_quotes"
    VIEW_OWN_INVOICES = "view_own_invoices"
    VIEW_ALL_INVOICES = "view_all_invoices"
    MANAGE_INVOICES = "manage_invoices"
    VIEW_FINANCIAL = "view_financial"
    MANAGE_FINANCIAL = "manage_financial"

    # users and administration
    VIEW_USERS = "view_users"
    MANAGE_USERS = "manage_users"
    VIEW_USER_DETAILS = "view_user_details"
    MANAGE_SYSTEM = "manage_system"
    VIEW_SYSTEM_REPORTS = "view_system_reports"
    MANAGE_SETTINGS = "manage_settings"
    VIEW_ACTIVITIES = "view_activities"
