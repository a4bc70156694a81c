PAGE_TITLES = {
    "/": "Dashboard",
    "/dashboard": "Dashboard",
    "/leads": "Lead Management",
    "/customers": "Customer Management",
    "/sales-pipeline": "Sales Pipeline",
    "/rfq-management": "RFQ Management",
    "/support-tickets": "Support Tickets",
    "/email-templates": "Email Templates",
    "/reports": "Reports",
    "/user-management": "User Management",
    "/audit-logs": "Audit Logs",
    "/session-analytics": "Session Analytics",
    "/session-test": "Session Test",
}


def page_title_for(path: str) -> str:
    return PAGE_TITLES.get(path, f"Page: {path}")
