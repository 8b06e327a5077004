import fastapi
import logging
from . import webhooks, purchase, payment
from .dependencies import get_settings
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(level=logging.INFO)

app = fastapi.FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(webhooks.router)
app.include_router(purchase.router)
app.include_router(payment.router)
