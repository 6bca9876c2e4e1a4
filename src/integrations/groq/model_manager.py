import json
import logging
from collections import deque
from datetime import datetime
from typing import Deque, Dict, Optional, Tuple
from .constants import FALLBACK_FAILURE_THRESHOLD, MODEL_CONFIGURATIONS, TASK_COMPLEXITY

logger = logging.getLogger(__name__)

# Outcomes kept per model
HISTORY_SIZE = 100


class ModelManager:
    def __init__(self, force_model: Optional[str] = None, metrics_file: Optional[str] = None,
                 history_size: int = HISTORY_SIZE):
        """
        Initialize the ModelManager.

        Args:
            force_model: Model name that overrides task-based selection
                (e.g. from GROQ_MODEL)
            metrics_file: Optional file to persist performance metrics
            history_size: Outcomes kept per model
        """
        self.force_model = force_model
        self.metrics_file = metrics_file
        self.history_size = history_size
        self.performance_metrics: Dict[str, Dict[str, Deque[Dict]]] = {'models': self._load_metrics()}
        # Keyed by (complexity tier, model): tiers share a primary but fail over independently
        self._consecutive_failures: Dict[Tuple[str, str], int] = {}

    def _load_metrics(self) -> Dict[str, Deque[Dict]]:
        """Load existing performance history from file"""
        if not self.metrics_file:
            return {}
        try:
            with open(self.metrics_file, 'r') as f:
                stored = json.load(f).get('models', {})
        except (FileNotFoundError, json.JSONDecodeError, AttributeError):
            return {}
        return {model: deque(entries, maxlen=self.history_size) for model, entries in stored.items()}

    def get_model_config(self, task_type: str) -> Dict:
        """
        Get the model configuration for a task.

        Args:
            task_type: Type of task (e.g., 'message_classification')

        Returns:
            Dict containing model name and token limit
        """
        if self.force_model:
            return {'name': self.force_model, 'max_tokens': 2048}

        complexity = TASK_COMPLEXITY.get(task_type)
        if not complexity:
            raise ValueError(f"Unknown task type: {task_type}")

        models = MODEL_CONFIGURATIONS[complexity]
        if self._should_use_fallback(complexity, models['primary']['name']):
            logger.info(
                f"Primary model {models['primary']['name']} failing for {complexity} tasks, "
                f"using {models['fallback']['name']}"
            )
            return models['fallback']
        return models['primary']

    def _should_use_fallback(self, complexity: str, primary_model: str) -> bool:
        """Fallback once the primary has failed several times in a row for this tier."""
        return self._consecutive_failures.get((complexity, primary_model), 0) >= FALLBACK_FAILURE_THRESHOLD

    def record_performance(self, model: str, task_type: str, success: bool, duration: float = 0.0):
        """
        Record the outcome of one request.

        Args:
            model: Model name
            task_type: Type of task
            success: Whether the request succeeded
            duration: Request duration in seconds
        """
        key = (TASK_COMPLEXITY.get(task_type, task_type), model)
        if success:
            self._consecutive_failures[key] = 0
        else:
            self._consecutive_failures[key] = self._consecutive_failures.get(key, 0) + 1

        history = self.performance_metrics['models'].setdefault(model, deque(maxlen=self.history_size))
        history.append({
            'timestamp': datetime.now().isoformat(),
            'task_type': task_type,
            'success': success,
            'duration': duration
        })

        if self.metrics_file:
            with open(self.metrics_file, 'w') as f:
                json.dump({'models': {m: list(h) for m, h in self.performance_metrics['models'].items()}}, f, indent=2)

    def success_rate(self, model: str) -> Optional[float]:
        """Share of recent requests to model that succeeded, or None without history."""
        history = self.performance_metrics['models'].get(model)
        if not history:
            return None
        return sum(1 for entry in history if entry['success']) / len(history)
