"""
Production entrypoint (Render).

Render runs uvicorn against: main:app
So this file must stay a thin wrapper.
"""
import logging
import os
import traceback

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.main import app  # real FastAPI app lives here

logger = logging.getLogger("replymate.entrypoint")


class ProofAndCrashShield(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            resp = await call_next(request)
        except Exception as e:
            logger.exception("Request crashed: %s %s", request.method, request.url.path)

            # Minimal "where" without dumping the stack to users
            last = ""
            tb = traceback.extract_tb(e.__traceback__)
            if tb:
                fr = tb[-1]
                last = f"{os.path.basename(fr.filename)}:{fr.lineno}:{fr.name}"

            resp = JSONResponse({"error": "Internal Server Error"}, status_code=500)
            resp.headers["X-Exception"] = type(e).__name__
            resp.headers["X-Trace-Last"] = last[:220]

        resp.headers["X-Git-Sha"] = os.getenv("RENDER_GIT_COMMIT", "")
        resp.headers["X-Entrypoint"] = "root.main"
        return resp


app.add_middleware(ProofAndCrashShield)
