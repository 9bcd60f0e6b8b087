from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from dairy_portal.auth import Principal, staff_access
from dairy_portal.db import get_db
from dairy_portal.services.dashboard_service import get_dashboard_stats

router = APIRouter(tags=['dashboard'])


@router.get('/')
def home(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    cards = [
        {'href': '/bulk-entry', 'label': 'Bulk Delivery Entry', 'requires_admin': False},
        {'href': '/deliveries', 'label': 'Delivery Records', 'requires_admin': False},
        {'href': '/payments', 'label': 'Payments', 'requires_admin': False},
        {'href': '/payments/pending', 'label': 'Pending Payments', 'requires_admin': False},
        {'href': '/bills', 'label': 'Monthly Bills', 'requires_admin': False},
        {'href': '/customers', 'label': 'Customers', 'requires_admin': False},
        {'href': '/milk-types', 'label': 'Milk Types', 'requires_admin': True},
    ]
    visible_cards = [card for card in cards if principal.is_admin or not card['requires_admin']]
    return request.app.state.templates.TemplateResponse(
        'dashboard.html',
        {
            'request': request,
            'principal': principal,
            'cards': visible_cards,
            'stats': get_dashboard_stats(db, today=date.today()),
        },
    )
