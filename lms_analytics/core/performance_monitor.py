# lms_analytics/core/performance_monitor.py
import time
import logging
from functools import wraps
from typing import Callable, Any, Optional
from .config_analytics import analytics_settings

logger = logging.getLogger(__name__)

def monitor_performance(operation_name: Optional[str] = None):
    """Decorator to time async operations and flag slow ones"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            op_name = operation_name or f"{func.__module__}.{func.__name__}"
            
            try:
                result = await func(*args, **kwargs)
                execution_time = time.perf_counter() - start_time
                
                if execution_time > analytics_settings.SLOW_OPERATION_SECONDS:
                    logger.warning(f"Slow operation detected: {op_name} took {execution_time:.2f}s")
                else:
                    logger.debug(f"Operation completed: {op_name} in {execution_time:.2f}s")
                
                return result
            except Exception as e:
                execution_time = time.perf_counter() - start_time
                logger.error(f"Operation failed: {op_name} after {execution_time:.2f}s - {str(e)}")
                raise
        
        return async_wrapper
    return decorator
