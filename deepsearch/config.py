from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "openai/gpt-4o-mini"
    openrouter_model: str = ""
    planner_model: str = ""  # optional override for query planning only
    summarizer_model: str = ""  # optional override for page summaries only

    # Search provider
    search_provider: str = "serper"  # serper | tavily
    serper_api_key: str = ""
    tavily_api_key: str = ""
    search_fallback_to_tavily: bool = False
    search_results_count: int = 10

    # Crawler
    crawl_timeout_seconds: float = 20.0
    crawl_max_parallel_requests: int = 8
    crawl_retry_max: int = 2
    crawl_retry_initial_delay: float = 0.5
    crawl_max_page_chars: int = 60000
    crawl_user_agent: str = "DeepSearchBot/1.0"
    crawl_respect_robots: bool = True

    # Agent loop
    step_limit: int = 10
    max_planned_queries: int = 5
    plan_max_tokens: int = 2000
    decide_max_tokens: int = 1200
    summary_max_tokens: int = 1500
    answer_max_tokens: int = 8192

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
