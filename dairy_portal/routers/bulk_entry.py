from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from dairy_portal.auth import Principal, staff_access
from dairy_portal.config import settings
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
from dairy_portal.services.bulk_entry_service import (
    BulkEntryDraft,
    BulkEntryStep,
    StaleCursorError,
    cursor_for_run,
    get_prefill,
    get_run,
    previous_entry,
    skip_entry,
    start_run,
    submit_entry,
)
from dairy_portal.services.customer_service import get_customer
from dairy_portal.services.milk_type_service import list_milk_types
from dairy_portal.services.money_utils import ZERO, parse_decimal

router = APIRouter(prefix='/bulk-entry', tags=['bulk_entry'])


def _expected_version(raw: object) -> int:
    value = str(raw or '').strip()
    if not value.isdigit():
        raise HTTPException(status_code=400, detail='Missing entry version')
    return int(value)


def _step_redirect(step: BulkEntryStep) -> RedirectResponse:
    suffix = '?wrapped=1' if step.cursor.wrapped else ''
    return RedirectResponse(f'/bulk-entry/{step.run.id}{suffix}', status_code=303)


@router.get('')
def bulk_entry_start_page(
    request: Request,
    principal: Principal = Depends(staff_access),
):
    return request.app.state.templates.TemplateResponse(
        'bulk_entry_start.html',
        {
            'request': request,
            'principal': principal,
            'today': date.today(),
            'times_of_day': list(TimeOfDay),
        },
    )


@router.post('')
async def bulk_entry_start_submit(
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    delivery_date = parse_date_param(str(form.get('delivery_date', '')), field='delivery date') or date.today()
    time_of_day = parse_time_of_day(form.get('time_of_day'))
    try:
        run = start_run(
            db,
            principal=principal,
            delivery_date=delivery_date,
            time_of_day=time_of_day,
            terminal_policy=settings.bulk_entry_terminal_policy.strip().upper(),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='BULK_ENTRY_STARTED',
        ip=get_client_ip(request),
        metadata={'bulk_entry_run_id': run.id, 'customers': len(run.customer_ids)},
    )
    db.commit()
    return RedirectResponse(f'/bulk-entry/{run.id}', status_code=303)


@router.get('/{run_id}')
def bulk_entry_page(
    run_id: int,
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
):
    try:
        run = get_run(db, run_id=run_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    cursor = cursor_for_run(run)
    customer = None
    prefill = None
    if cursor.current_customer_id is not None:
        try:
            customer = get_customer(db, customer_id=cursor.current_customer_id)
        except LookupError:
            # Deleted since the run started; the operator can only skip past it.
            customer = None
        if customer is not None:
            prefill = get_prefill(db, customer_id=customer.id)

    return request.app.state.templates.TemplateResponse(
        'bulk_entry.html',
        {
            'request': request,
            'principal': principal,
            'run': run,
            'cursor': cursor,
            'customer': customer,
            'prefill': prefill,
            'milk_types': list_milk_types(db),
            'wrapped': request.query_params.get('wrapped') == '1',
        },
    )


@router.post('/{run_id}/next')
async def bulk_entry_next(
    run_id: int,
    request: Request,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    expected_version = _expected_version(form.get('expected_version'))
    try:
        draft = BulkEntryDraft(
            milk_type_id=parse_optional_id(form.get('milk_type_id')),
            quantity=parse_decimal(form.get('quantity'), field='Quantity', allow_blank=True) or ZERO,
            price_per_liter=parse_decimal(form.get('price_per_liter'), field='Price per liter', allow_blank=True),
            grocery_items=parse_grocery_items(form),
            notes=str(form.get('notes', '')),
        )
        step = submit_entry(
            db,
            run_id=run_id,
            expected_version=expected_version,
            draft=draft,
            principal_id=principal.id,
        )
    except StaleCursorError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action='DELIVERY_CREATED',
        ip=get_client_ip(request),
        customer_id=step.delivery.customer_id,
        metadata={
            'delivery_record_id': step.delivery.id,
            'bulk_entry_run_id': run_id,
            'total_amount': str(step.delivery.total_amount),
        },
    )
    db.commit()
    return _step_redirect(step)


@router.post('/{run_id}/skip')
async def bulk_entry_skip(
    run_id: int,
    request: Request,
    _principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        step = skip_entry(db, run_id=run_id, expected_version=_expected_version(form.get('expected_version')))
    except StaleCursorError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    db.commit()
    return _step_redirect(step)


@router.post('/{run_id}/previous')
async def bulk_entry_previous(
    run_id: int,
    request: Request,
    _principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        step = previous_entry(db, run_id=run_id, expected_version=_expected_version(form.get('expected_version')))
    except StaleCursorError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    db.commit()
    return _step_redirect(step)
