import asyncio

from tradebrain.core.initialization import initialize_components, load_configuration
from tradebrain.utils.config_manager import ConfigManager
from tradebrain.utils.config_validator import validate_config
from tradebrain.utils.logger import setup_logger


async def run_bot(env_path: str = "config.env") -> None:
    """
    Entrypoint coroutine for the decision service.

    Loads and validates the configuration, configures the package logger
    (rotating file + console) before any asynchronous work begins, wires the
    components, restores learned state and runs the scheduler until
    cancelled.
    """
    config = load_configuration(env_path)
    # refuse to start on invalid settings
    validate_config(config)

    # every module logs under "tradebrain.*", so handlers attach here once
    logger = setup_logger(config=config)

    components = initialize_components(config, logger=logger)
    learning = components["learning"]
    learning.restore(ConfigManager(config).get_symbols())

    scheduler = components["scheduler"]
    try:
        await scheduler.run()
    finally:
        await components["bus"].close()
        await components["market_data"].close()
        components["store"].store.close()
        logger.info("👋 TradeBrain stopped")


def main():
    try:
        asyncio.run(run_bot())
    except KeyboardInterrupt:
        print("⏹️ Interrupted")
    except Exception as e:
        print(f"❌ TradeBrain terminated due to error: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
