import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from dairy_portal.config import settings
from dairy_portal.routers import auth, bills, bulk_entry, customers, dashboard, deliveries, milk_types, payments
from dairy_portal.security.csrf import csrf_token_for, install_csrf_cookie_middleware
from dairy_portal.security.headers import install_security_headers
from dairy_portal.security.sessions import install_auth_session_middleware
from dairy_portal.services.money_utils import format_amount, format_quantity

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

app = FastAPI(title='Dairy Delivery Portal')

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'
app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))

app.state.templates.env.globals['csrf_token'] = csrf_token_for
app.state.templates.env.globals['business_name'] = settings.business_name
app.state.templates.env.filters['amount'] = format_amount
app.state.templates.env.filters['liters'] = format_quantity

install_security_headers(app)
install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)

if settings.bill_storage_provider.strip().lower() == 'local':
    bill_dir = Path(settings.bill_storage_dir)
    bill_dir.mkdir(parents=True, exist_ok=True)
    # Shared bill links are opened by customers, so this mount is exempt from the session check.
    app.mount('/bills/files', StaticFiles(directory=str(bill_dir)), name='bill_files')

app.include_router(auth.router)
app.include_router(dashboard.router)
app.include_router(customers.router)
app.include_router(milk_types.router)
app.include_router(deliveries.router)
app.include_router(payments.router)
app.include_router(bills.router)
app.include_router(bulk_entry.router)


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
