# src/image_upscaler/core/error_handling.py

import asyncio
import functools
import inspect
import logging

import httpx
from botocore.exceptions import BotoCoreError, ClientError as BotocoreClientError
from PIL import Image, UnidentifiedImageError as PILUnidentifiedImageError

from .exceptions import (
    DecodeError,
    ImageUpscalerError,
    StorageError,
    UpscaleProviderError,
)


def _translate(func_name, exc):
    """Map a library exception onto the upscaler hierarchy, or return None."""
    if isinstance(exc, BotocoreClientError):
        return StorageError(f"S3 operation failed in {func_name}: {exc}")
    if isinstance(exc, BotoCoreError):
        return StorageError(f"S3 unavailable in {func_name}: {exc}")
    if isinstance(exc, (PILUnidentifiedImageError, Image.DecompressionBombError)):
        return DecodeError(f"Failed to identify image in {func_name}: {exc}")
    if isinstance(exc, httpx.TimeoutException):
        return UpscaleProviderError(
            f"Request timed out in {func_name}: {exc}", retryable=True
        )
    if isinstance(exc, httpx.TransportError):
        return UpscaleProviderError(
            f"Network error in {func_name}: {exc}", retryable=True
        )
    return None


def with_error_handling(func):
    """
    A decorator to wrap functions (plain or async) with standardized error handling.

    Errors already in the upscaler hierarchy pass through untouched; known
    library errors are logged and re-raised as their upscaler counterpart.
    """
    logger = logging.getLogger(func.__module__ + "." + func.__name__)

    def _handle(e):
        if isinstance(e, ImageUpscalerError):
            raise e
        logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
        translated = _translate(func.__name__, e)
        if translated is not None:
            raise translated from e
        raise e

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                _handle(e)

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            _handle(e)

    return wrapper


def retry_async(max_attempts=2, initial_delay=1.0, backoff_factor=2.0):
    """
    Decorator to retry async provider operations with exponential backoff.

    Only ``UpscaleProviderError`` flagged ``retryable`` is retried; anything
    else propagates on the first failure.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            logger = logging.getLogger(func.__module__ + "." + func.__name__)
            attempts = 0
            delay = initial_delay
            while True:
                try:
                    return await func(*args, **kwargs)
                except UpscaleProviderError as e:
                    attempts += 1
                    if not e.retryable:
                        logger.error(
                            f"Operation '{func.__name__}' failed with non-retryable error: {e}"
                        )
                        raise
                    if attempts >= max_attempts:
                        logger.error(
                            f"Operation '{func.__name__}' failed after {max_attempts} attempts. Error: {e}"
                        )
                        raise

                    logger.info(
                        f"Operation '{func.__name__}' failed. Attempt {attempts}/{max_attempts}. "
                        f"Retrying in {delay:.2f}s. Error: {e}"
                    )
                    await asyncio.sleep(delay)
                    delay *= backoff_factor

        return wrapper

    return decorator


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.
    """

    def __init__(self, operation_name="Batch Operation", logger=None):
        self.operation_name = operation_name
        self.errors = []
        self.logger = logger or logging.getLogger(
            self.__class__.__module__ + "." + self.__class__.__name__
        )

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.warning(
                    f"  Error {i + 1}/{len(self.errors)} for item "
                    f"'{error_detail['item']}': {error_detail['error']}"
                )
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}"
            )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")

        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item"):
        """
        Report an error for a specific item within the 'with' block.

        Args:
            error_message (str): The error message or exception string.
            item_identifier (str): A string identifying the item that failed.
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(
            f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}"
        )
