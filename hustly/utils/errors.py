"""Error handling utilities."""


class HustlyError(Exception):
    """Base exception for the Hustly inventory backend."""
    pass


class SupabaseError(HustlyError):
    """Supabase operation error."""
    pass


class ConfigurationError(SupabaseError):
    """Required Supabase configuration is missing."""
    pass


class AuthenticationRequiredError(HustlyError):
    """No authenticated user for the request (never retried, never served from cache)."""
    pass


class QueryTimeoutError(HustlyError):
    """Database call did not finish within its timeout."""
    pass
