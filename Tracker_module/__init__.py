from .api_client import TrackingApiClient, TrackingApiError
from .client_storage import MemoryStore, JsonFileStore
from .controller import SessionTrackingController, BootResult
