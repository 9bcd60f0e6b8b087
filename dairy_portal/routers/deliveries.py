from __future__ import annotations

import csv
from datetime import date
from io import StringIO
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse, StreamingResponse
from sqlalchemy.orm import Session
from starlette.datastructures import FormData

from dairy_portal.auth import Principal, admin_access, staff_access
from dairy_portal.db import get_db
from dairy_portal.dependencies import (
    get_client_ip,
    parse_date_param,
    parse_grocery_items,
    parse_optional_id,
    parse_time_of_day,
)
from dairy_portal.models import TimeOfDay
from dairy_portal.security.csrf import verify_csrf
from dairy_portal.services.audit_service import log_audit
from dairy_portal.services.customer_service import list_customers
from dairy_portal.services.delivery_service import (
    DeliveryInput,
    create_delivery,
    delete_delivery,
    get_delivery,
    list_deliveries,
    list_grocery_items,
    update_delivery,
)
from dairy_portal.services.milk_type_service import list_milk_types
from dairy_portal.services.money_utils import ZERO, parse_decimal

router = APIRouter(prefix='/deliveries', tags=['deliveries'])


def _filters(request: Request) -> dict:
    return {
        'search': request.query_params.get('q', '').strip(),
        'customer_id': parse_optional_id(request.query_params.get('customer_id')),
        'from_date': parse_date_param(request.query_params.get('from'), field='from date'),
        'to_date': parse_date_param(request.query_params.get('to'), field='to date'),
    }


def _delivery_input(form: FormData) -> DeliveryInput:
    customer_id = parse_optional_id(form.get('customer_id'))
    if customer_id is None:
        raise ValueError('Select a customer')
    delivery_date = parse_date_param(str(form.get('delivery_date', '')), field='delivery date')
    if delivery_date is None:
        raise ValueError('Delivery date is required')
    return DeliveryInput(
        customer_id=customer_id,
        delivery_date=delivery_date,
        time_of_day=parse_time_of_day(form.get('time_of_day')),
        milk_type_id=parse_optional_id(form.get('milk_type_id')),
        quantity=parse_decimal(form.get('quantity'), field='Quantity', allow_blank=True) or ZERO,
        price_per_liter=parse_decimal(form.get('price_per_liter'), field='Price per liter', allow_blank=True),
        grocery_items=parse_grocery_items(form),
        notes=str(form.get('notes', '')),
    )


def _form_context(db: Session) -> dict:
    return {
        'customers': list_customers(db),
        'milk_types': list_milk_types(db),
        'times_of_day': list(TimeOfDay),
    }


@router.get('')
def deliveries_page(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    filters = _filters(request)
    rows = list_deliveries(db, **filters)
    export_query = urlencode({k: v for k, v in request.query_params.items() if v})
    return request.app.state.templates.TemplateResponse(
        'deliveries.html',
        {
            'request': request,
            'principal': principal,
            'rows': rows,
            'filters': filters,
            'customers': list_customers(db),
            'export_query': export_query,
            'can_delete': principal.is_admin,
        },
    )


@router.get('/export.csv')
def export_deliveries_csv(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    rows = list_deliveries(db, limit=None, **_filters(request))
    sio = StringIO()
    writer = csv.writer(sio)
    writer.writerow(
        ['Date', 'Time', 'Customer', 'Milk Type', 'Quantity (L)', 'Price/L', 'Total', 'Grocery Items', 'Notes']
    )
    for row in rows:
        writer.writerow(
            [
                row['delivery_date'].isoformat(),
                row['time_of_day'].label,
                row['customer_name'],
                row['milk_type_name'],
                row['quantity'],
                row['price_per_liter'],
                row['total_amount'],
                row['grocery_summary'],
                row['notes'],
            ]
        )

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='DELIVERIES_EXPORTED_CSV',
        ip=get_client_ip(request),
        metadata={'rows': len(rows)},
    )
    db.commit()

    sio.seek(0)
    return StreamingResponse(
        iter([sio.getvalue()]),
        media_type='text/csv',
        headers={'Content-Disposition': f'attachment; filename=deliveries-{date.today().isoformat()}.csv'},
    )


@router.get('/new')
def new_delivery_page(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    return request.app.state.templates.TemplateResponse(
        'delivery_form.html',
        {
            'request': request,
            'principal': principal,
            'record': None,
            'grocery_items': [],
            'today': date.today(),
            'selected_customer_id': parse_optional_id(request.query_params.get('customer_id')),
            **_form_context(db),
        },
    )


@router.post('')
async def create_delivery_submit(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        record = create_delivery(db, payload=_delivery_input(form), principal_id=principal.id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='DELIVERY_CREATED',
        ip=get_client_ip(request),
        customer_id=record.customer_id,
        metadata={'delivery_record_id': record.id, 'total_amount': str(record.total_amount)},
    )
    db.commit()
    return RedirectResponse('/deliveries', status_code=303)


@router.get('/{delivery_id}/edit')
def edit_delivery_page(
    delivery_id: int,
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    try:
        record = get_delivery(db, delivery_id=delivery_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return request.app.state.templates.TemplateResponse(
        'delivery_form.html',
        {
            'request': request,
            'principal': principal,
            'record': record,
            'grocery_items': list_grocery_items(db, delivery_id=record.id),
            'today': record.delivery_date,
            'selected_customer_id': record.customer_id,
            **_form_context(db),
        },
    )


@router.post('/{delivery_id}')
async def update_delivery_submit(
    delivery_id: int,
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        record = update_delivery(db, delivery_id=delivery_id, payload=_delivery_input(form))
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='DELIVERY_UPDATED',
        ip=get_client_ip(request),
        customer_id=record.customer_id,
        metadata={'delivery_record_id': record.id, 'total_amount': str(record.total_amount)},
    )
    db.commit()
    return RedirectResponse('/deliveries', status_code=303)


@router.post('/{delivery_id}/delete')
def delete_delivery_submit(
    delivery_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        record = delete_delivery(db, delivery_id=delivery_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='DELIVERY_DELETED',
        ip=get_client_ip(request),
        customer_id=record.customer_id,
        metadata={'delivery_record_id': delivery_id, 'total_amount': str(record.total_amount)},
    )
    db.commit()
    return RedirectResponse('/deliveries', status_code=303)
