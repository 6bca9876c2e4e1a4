# groq/constants.py

MODEL_CONFIGURATIONS = {
    'complex': {
        'primary': {
            'name': 'openai/gpt-oss-120b',
            'max_tokens': 2048,
            'recommended_tasks': ['reply_drafting']
        },
        'fallback': {
            'name': 'llama-3.3-70b-versatile',
            'max_tokens': 2048,
            'recommended_tasks': ['reply_drafting']
        }
    },
    'simple': {
        'primary': {
            'name': 'openai/gpt-oss-120b',
            'max_tokens': 1024,
            'recommended_tasks': ['message_classification', 'similarity_judgment', 'relevance_check']
        },
        'fallback': {
            'name': 'llama-3.1-8b-instant',
            'max_tokens': 1024,
            'recommended_tasks': ['message_classification', 'relevance_check']
        }
    }
}

# Complexity tier for each task type
TASK_COMPLEXITY = {
    'message_classification': 'simple',
    'similarity_judgment': 'simple',
    'relevance_check': 'simple',
    'reply_drafting': 'complex'
}

# Consecutive failures of a primary model before the fallback model is used
FALLBACK_FAILURE_THRESHOLD = 3
