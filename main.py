import inspect
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
from anthropic import AsyncAnthropic
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from dal.chat_message_dal import ChatMessageDAL
from dal.subscription_dal import SubscriptionDAL
from routes.billing_route import router as billing_router
from routes.chat_flow_route import router as chat_flow_router
from routes.image_route import router as image_router
from routes.openai_route import router as openai_router
from routes.video_route import router as video_router
from services.anthropic.prompt_enhancer import PromptEnhancer
from services.billing.checkout_service import CheckoutService
from services.billing.webhook_service import WebhookService
from services.did.talk_client import DID_BASE_URL, DIDTalkClient
from services.did.video_stitcher import VideoStitcher
from services.image_store import ImageStore
from services.openai.image_provider import OpenAIImageProvider
from services.openai.text_provider import OpenAITextProvider
from services.openai.vision_service import VisionService
from services.orchestrator.chat_flow import ChatFlowOrchestrator
from services.orchestrator.session_store import ConversationSessionStore
from services.replicate.image_provider import REPLICATE_BASE_URL, ReplicateImageProvider
from utils.errors import register_error_handlers
from utils.polling import PollingPolicy
from utils.settings import Settings, get_settings
from utils.supabase_init import SupabaseClientInitializer

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


def build_session_store(app: FastAPI, settings: Settings) -> ConversationSessionStore:
    """Session store whose orchestrators share the providers on `app.state`."""

    def factory() -> ChatFlowOrchestrator:
        return ChatFlowOrchestrator(
            app.state.text_provider,
            app.state.prompt_enhancer,
            app.state.image_provider,
            vector_store_ids=settings.openai_vector_store_ids,
            history_limit=settings.history_limit,
            reference_image_limit=settings.reference_image_limit,
        )

    return ConversationSessionStore(factory, idle_timeout_seconds=settings.session_idle_timeout_seconds)


async def _close(client) -> None:
    """Close a client exposing `aclose`/`close`; shutdown errors are logged only."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception:
        LOGGER.warning("Ignoring error while closing %s", type(client).__name__, exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize the provider clients and attach them to `app.state`:
      - OpenAI (required): text, vision, and image providers
      - Anthropic, Replicate, D-ID, Stripe, Supabase (optional): routes that need a
        missing provider answer 503
      - the conversation session store
    """
    settings: Settings = app.state.settings

    if not settings.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable is not set")

    try:
        openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
    except Exception as exc:
        raise RuntimeError("Failed to initialize OpenAI Async client") from exc

    closeables = [openai_client]
    app.state.openai_client = openai_client
    app.state.text_provider = OpenAITextProvider(
        openai_client, model=settings.openai_model, text_model=settings.openai_text_model
    )
    app.state.vision_service = VisionService(openai_client, model=settings.openai_vision_model)
    app.state.image_provider = OpenAIImageProvider(openai_client, model=settings.openai_image_model)

    app.state.prompt_enhancer = None
    if settings.anthropic_api_key:
        anthropic_client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        closeables.append(anthropic_client)
        app.state.prompt_enhancer = PromptEnhancer(anthropic_client, model=settings.anthropic_model)

    app.state.replicate_provider = None
    if settings.replicate_api_token:
        replicate_http = httpx.AsyncClient(base_url=REPLICATE_BASE_URL, timeout=60.0)
        closeables.append(replicate_http)
        app.state.replicate_provider = ReplicateImageProvider(
            settings.replicate_api_token,
            http_client=replicate_http,
            polling=PollingPolicy(settings.replicate_poll_interval_seconds, settings.replicate_poll_max_attempts),
        )

    app.state.did_client = None
    if settings.did_api_key:
        did_http = httpx.AsyncClient(base_url=DID_BASE_URL, timeout=30.0)
        closeables.append(did_http)
        app.state.did_client = DIDTalkClient(
            settings.did_api_key,
            http_client=did_http,
            polling=PollingPolicy(settings.did_poll_interval_seconds, settings.did_poll_max_attempts),
            elevenlabs_api_key=settings.elevenlabs_api_key,
        )
    stitcher = VideoStitcher()
    app.state.video_stitcher = stitcher if stitcher.available() else None

    supabase = SupabaseClientInitializer(settings.supabase_url, settings.supabase_service_role_key)
    app.state.supabase = supabase
    app.state.chat_messages = ChatMessageDAL(supabase) if supabase.configured else None
    app.state.subscriptions = SubscriptionDAL(supabase) if supabase.configured else None
    app.state.image_store = ImageStore(supabase) if supabase.configured else None

    app.state.checkout_service = None
    app.state.webhook_service = None
    if settings.stripe_secret_key:
        app.state.checkout_service = CheckoutService(settings.stripe_secret_key, settings.public_base_url)
        if settings.stripe_webhook_secret and app.state.subscriptions is not None:
            app.state.webhook_service = WebhookService(
                app.state.subscriptions, settings.stripe_webhook_secret, api_key=settings.stripe_secret_key
            )

    app.state.session_store = build_session_store(app, settings)
    LOGGER.info(
        "Providers ready: anthropic=%s replicate=%s d-id=%s stripe=%s supabase=%s",
        app.state.prompt_enhancer is not None,
        app.state.replicate_provider is not None,
        app.state.did_client is not None,
        app.state.checkout_service is not None,
        supabase.configured,
    )

    try:
        yield
    finally:
        for client in closeables:
            await _close(client)


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    settings = settings or get_settings()
    app = FastAPI(title="GenLo API", lifespan=lifespan)
    app.state.settings = settings
    app.state.started_at = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-quelle-request-id", "x-quelle-processing-ms", "x-quelle-model", "x-quelle-provider"],
    )
    register_error_handlers(app)

    @app.get("/health")
    async def health(request: Request):
        """
        Liveness plus which provider clients were configured at startup.
        """
        state = request.app.state

        def status(name: str) -> str:
            return "operational" if getattr(state, name, None) is not None else "not_configured"

        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.time() - state.started_at, 3),
            "services": {
                "api": "operational",
                "openai": status("openai_client"),
                "anthropic": status("prompt_enhancer"),
                "database": status("chat_messages"),
                "stripe": status("checkout_service"),
            },
        }

    # Register application routers
    app.include_router(chat_flow_router)
    app.include_router(openai_router)
    app.include_router(image_router)
    app.include_router(video_router)
    app.include_router(billing_router)

    return app


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


configure_logging(get_settings().log_level)
app = create_app()
