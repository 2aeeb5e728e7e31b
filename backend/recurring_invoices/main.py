from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from recurring_invoices.core.config import settings
from recurring_invoices.routers import analytics, recurring_generation, recurring_templates

OPENAPI_TAGS = [
    {"name": "Cron", "description": "Scheduled generation of recurring invoices."},
    {
        "name": "Recurring Invoices",
        "description": "Template management, manual generation, usage recording and projection.",
    },
    {"name": "Analytics", "description": "Recurring revenue forecasting and customer value."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Recurring invoice scheduler. Generates invoices from recurring "
        "templates, bills metered usage and projects future revenue."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


app.include_router(recurring_generation.router, prefix="/v1/cron", tags=["Cron"])
app.include_router(
    recurring_templates.router,
    prefix="/v1/recurring_invoices",
    tags=["Recurring Invoices"],
)
app.include_router(analytics.router, prefix="/v1/analytics", tags=["Analytics"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }
