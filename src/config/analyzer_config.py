# config/analyzer_config.py

ANALYZER_CONFIG = {
    "similarity": {
        "primary_method": "embeddings",  # "embeddings" or "llm"
        "pool_cap": 50,
        "accept_threshold": 0.6,
        "floor_threshold": 0.15,
        "top_k": 3,
        "llm_candidate_limit": 25,
        "llm_candidate_chars": 280,
        "llm_target_chars": 400
    },
    "classification": {
        "max_input_chars": 4000,
        "max_tags": 3,
        "backfill_batch_size": 3
    },
    "draft": {
        "policy_context_chars": 6000,
        "message_chars": 1500,
        "temperature": 0.4,
        "max_tokens": 700
    },
    "relevance": {
        "max_input_chars": 2000,
        "excluded_labels": [
            "SPAM",
            "TRASH",
            "CATEGORY_PROMOTIONS",
            "CATEGORY_SOCIAL",
            "CATEGORY_FORUMS"
        ]
    },
    "ingestion": {
        "default_max_results": 30,
        "max_results_limit": 50,
        "upsert_batch_size": 2,
        "sync_timeout": 3.0
    },
    "groq": {
        "model": "openai/gpt-oss-120b",
        "retry_count": 2,
        "backoff_seconds": 1.0
    },
    "ollama": {
        "base_url": "http://localhost:11434",
        "chat_model": "gpt-oss:120b-cloud",
        "embed_model": "nomic-embed-text",
        # Simple numeric timeout in seconds for each HTTP call
        "timeout": 60
    },
    "embeddings": {
        "provider": "ollama",  # "ollama", "http" or "tfidf"
        "function_url": None,
        "timeout": 30
    }
}
