import logging
import os

from fastapi import FastAPI

from .routers import intercompany, journal_entries

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="Ledger Posting API")

app.include_router(journal_entries.router)
app.include_router(intercompany.router)


@app.get("/")
def root():
    return {"status": "ok"}
