__version__: str = "1.0.0"

from .http.model import (  # NOQA: E402
	HTTPRequest,
	HTTPResponse,
	HTTPRequestError,
	Forbidden,
	NotFound,
	InternalError,
)  # NOQA: F401
from .services.files import FileService, resolvePath  # NOQA: F401, E402
from .server import run  # NOQA: F401, E402


# EOF
