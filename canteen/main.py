import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from canteen.auth import GuardRedirect, get_current_principal, home_path_for
from canteen.config import settings
from canteen.db import SessionLocal, init_db
from canteen.routers import admin, auth, canteen, contractor, employee
from canteen.security.csrf import get_csrf_token, install_csrf_cookie_middleware
from canteen.security.headers import install_security_headers
from canteen.security.sessions import install_auth_session_middleware
from canteen.seed_example import seed, seed_super_admin

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    with SessionLocal() as db:
        if settings.seed_demo_data:
            seed(db)
        else:
            seed_super_admin(db)
        db.commit()
    logger.info('Canteen portal ready (database: %s)', 'memory' if settings.database_is_memory else 'external')
    yield


app = FastAPI(title='Canteen Coupon Portal', lifespan=lifespan)

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'
app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
app.state.templates.env.globals['csrf_token'] = get_csrf_token

install_security_headers(app)
install_auth_session_middleware(app)
install_csrf_cookie_middleware(app)

app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(employee.router)
app.include_router(canteen.router)
app.include_router(contractor.router)


@app.exception_handler(GuardRedirect)
async def guard_redirect_handler(request: Request, exc: GuardRedirect):
    return RedirectResponse(exc.location, status_code=303)


@app.get('/')
def root(request: Request):
    principal = get_current_principal(request)
    return RedirectResponse(home_path_for(principal), status_code=303)


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'


@app.get('/healthz', response_class=PlainTextResponse)
def healthz() -> str:
    return 'ok'
