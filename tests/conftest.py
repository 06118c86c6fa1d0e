import os
import warnings

# Ignore warnings from third-party ODM internals
warnings.filterwarnings("ignore", category=DeprecationWarning, module="beanie.*")

# Set test environment variables before the config singleton is loaded
os.environ.update(
    {
        "DEBUG": "false",
        "MEDIA_SERVER_BASE_URL": "http://media.test:8087",
        "MEDIA_SERVER_USERNAME": "",
        "MEDIA_SERVER_PASSWORD": "",
        "MEDIA_SERVER_DEFAULT_USERNAME": "admin",
        "MEDIA_SERVER_DEFAULT_PASSWORD": "test-password",
        "MEDIA_SERVER_SETTLING_SECONDS": "0",
        "PROCESS_SETTLING_SECONDS": "0",
        "REMOTE_HOST_DEFAULT": "streaming@transcoder.test:2222",
        "INTERNAL_API_KEY": "test-api-key",
    }
)

# Import fixtures so they are available to all tests
from tests.fixtures.mongo_fixtures import *  # noqa: E402, F403
from tests.fixtures.session_fixtures import *  # noqa: E402, F403
