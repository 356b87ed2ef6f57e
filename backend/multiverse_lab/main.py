# main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from multiverse_lab.config import Config
from multiverse_lab.routes import universes

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Multiverse Lab",
    description="Parallel-universe layout generation and fusion",
    debug=Config.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Same {error} shape as every other failure the API reports
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid request payload: {where}: {first.get('msg', 'invalid value')}" if where else "Invalid request payload"
    return JSONResponse(status_code=422, content={"error": message})


app.include_router(universes.router)

@app.get("/health")
def health():
    return {"status": "ok"}
