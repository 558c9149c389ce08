from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from provisioning_engine.api.routes.plans import router as plans_router
from provisioning_engine.core.errors import PlanningError

app = FastAPI(title="Provisioning Planner API")


@app.exception_handler(PlanningError)
async def planning_error_handler(request: Request, exc: PlanningError):
    return JSONResponse(
        status_code=422,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "identifiers": list(exc.identifiers),
        },
    )


@app.get("/health")
def health():
    return {"status": "ok"}

app.include_router(plans_router)
