from legallens.auth.token import AuthenticatedUser, FirebaseTokenVerifier, get_current_user

__all__ = ["AuthenticatedUser", "FirebaseTokenVerifier", "get_current_user"]
