"""Webhook receivers for Linear and GitHub"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from syncbridge.config import settings
from syncbridge.errors import SyncError
from syncbridge.security import client_ip
from syncbridge.services.store import CorrespondenceStore, get_store
from syncbridge.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["webhooks"])


def get_webhook_service(store: CorrespondenceStore = Depends(get_store)) -> WebhookService:
    return WebhookService(store)


@router.post("/linear/webhook")
async def linear_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    """Receive a Linear webhook delivery"""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        message = await service.handle_linear(payload, client_ip(request, settings.trust_forwarded_for))
    except SyncError as e:
        logger.error(f"Linear webhook failed: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.exception("Linear webhook failed unexpectedly")
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": message}


@router.post("/github/webhook")
async def github_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    """Receive a GitHub webhook delivery"""
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event_name = request.headers.get("x-github-event", "")
    signature = request.headers.get("x-hub-signature-256")
    try:
        message = await service.handle_github(event_name, payload, raw_body, signature)
    except SyncError as e:
        logger.error(f"GitHub webhook failed: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.exception("GitHub webhook failed unexpectedly")
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": message}
