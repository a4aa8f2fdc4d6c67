from finance_chat.core import settings
from finance_chat.integration.gateway import DataGateway
from finance_chat.integration.rates import FrankfurterRateProvider, RateProvider
from finance_chat.logger import get_logger, setup_logging
from finance_chat.manager import IntentService
from finance_chat.services.analysis import AnalysisEngine
from finance_chat.services.budget import BudgetNotifier
from finance_chat.services.currency import CurrencyNormalizer, shared_rate_cache
from finance_chat.services.engine import QueryEngine
from finance_chat.services.extraction import ParameterExtractor
from finance_chat.services.formatting import ResponseFormatter

logger = get_logger(__name__)


def create_engine(
    gateway: DataGateway,
    provider: RateProvider | None = None,
    engine_settings: settings.EngineSettings | None = None,
) -> QueryEngine:
    """Build a query engine wired from the environment and config file."""
    setup_logging()
    logger.info("Initializing query engine...")
    settings.log_environment()

    config = engine_settings or settings.load_engine_settings()
    if provider is None:
        provider = FrankfurterRateProvider(
            base_url=config.rate_provider_url,
            timeout=config.rate_provider_timeout,
            token=config.rate_provider_token,
        )

    normalizer = CurrencyNormalizer(
        provider=provider,
        cache=shared_rate_cache(),
        ttl_seconds=config.rate_cache_ttl,
    )
    engine = QueryEngine(
        gateway=gateway,
        normalizer=normalizer,
        intents=IntentService(fuzzy_threshold=config.fuzzy_intent_threshold),
        extractor=ParameterExtractor(default_periods=config.trend_periods),
        analysis=AnalysisEngine(
            trend_threshold=config.trend_threshold_percent,
            notifier=BudgetNotifier(warning_percent=config.budget_warning_percent),
        ),
        formatter=ResponseFormatter(),
        default_language=config.default_language,
        default_currency=config.base_currency,
        default_periods=config.trend_periods,
    )
    logger.info("Query engine initialized.")
    return engine
