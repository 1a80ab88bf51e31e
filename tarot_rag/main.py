import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables from .env file
load_dotenv()

from tarot_rag.config import configure_logging
from tarot_rag.routes.reading_routes import router as reading_router

configure_logging(os.getenv("LOG_LEVEL", "INFO"))

app = FastAPI(title="Tarot RAG Reading Service", version="0.1.0")

app.include_router(reading_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    return {"ok": True}
