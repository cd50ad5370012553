# Services are imported from their modules directly:
# from services.auth import AuthService
# from services.transformer import TextTransformer
# from services.history import HistoryService

__all__ = []
