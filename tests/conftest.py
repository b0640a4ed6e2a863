# tests/conftest.py
import pytest
from pathlib import Path
from unittest.mock import MagicMock
import sys
import argparse

# Ensure the app package is findable by pytest by adding the project root to the path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from cinepost.config_manager import CascadeSettings
from cinepost.enums import OperationKind
from cinepost.models import CascadeRequest


@pytest.fixture
def mock_cfg_helper(mocker):
    mock_args = argparse.Namespace(profile='default')
    mock_config_manager = MagicMock()
    class MockConfigHelper:
        def __init__(self, manager, args): self.manager = manager; self.args = args; self.profile = getattr(args, 'profile', 'default') or 'default'
        def __call__(self, key, default_value=None, arg_value=None):
             if arg_value is not None: return arg_value
             if key in self.manager._mock_values: return self.manager._mock_values[key]
             return default_value
        def get_api_key(self, service_name): return self.manager._mock_apikeys.get(service_name)
    mock_config_manager._mock_values = {}
    mock_config_manager._mock_apikeys = {}
    helper = MockConfigHelper(mock_config_manager, mock_args)
    helper.manager = mock_config_manager
    return helper


@pytest.fixture
def settings():
    return CascadeSettings(provider_timeout_seconds=5.0)


def _make_response(status_code=200, json_data=None, json_error=False):
    response = MagicMock(name=f"Response{status_code}")
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = json_data if json_data is not None else {}
    return response


@pytest.fixture
def make_response():
    """Factory for requests.Response stand-ins with the attributes the clients read."""
    return _make_response


@pytest.fixture
def mock_session():
    session = MagicMock(name="Session")
    return session


@pytest.fixture
def metadata_request():
    return CascadeRequest(operation=OperationKind.FETCH_FULL_METADATA, title="Inception (2010)")


# --- Canned provider payloads ---

@pytest.fixture
def tmdb_movie_details():
    return {
        'id': 27205,
        'title': 'Inception',
        'genres': [{'id': 28, 'name': 'Action'}, {'id': 878, 'name': 'Science Fiction'}],
        'overview': 'Cobb, a skilled thief who commits corporate espionage by infiltrating the subconscious of his targets.',
        'vote_average': 8.369,
        'vote_count': 35000,
        'budget': 160000000,
        'release_date': '2010-07-15',
        'spoken_languages': [{'english_name': 'English', 'iso_639_1': 'en', 'name': 'English'}, {'english_name': 'Japanese', 'iso_639_1': 'ja', 'name': '日本語'}],
        'original_language': 'en',
        'poster_path': '/oYuLEt3zVCKq57qu2F8dT7NIa6f.jpg',
        'credits': {
            'cast': [{'name': n} for n in ['Leonardo DiCaprio', 'Joseph Gordon-Levitt', 'Ken Watanabe', 'Tom Hardy', 'Elliot Page', 'Dileep Rao', 'Cillian Murphy']],
            'crew': [{'name': 'Hans Zimmer', 'job': 'Original Music Composer'}, {'name': 'Christopher Nolan', 'job': 'Director'}],
        },
    }


@pytest.fixture
def omdb_payload():
    return {
        'Title': 'Inception', 'Year': '2010', 'Released': '16 Jul 2010',
        'Genre': 'Action, Adventure, Sci-Fi', 'Director': 'Christopher Nolan',
        'Actors': 'Leonardo DiCaprio, Joseph Gordon-Levitt, Elliot Page',
        'Plot': 'A thief who steals corporate secrets through the use of dream-sharing technology...',
        'Language': 'English, Japanese, French',
        'Poster': 'https://m.media-amazon.com/images/M/inception.jpg',
        'imdbRating': '8.8', 'BoxOffice': '$292,587,330', 'Response': 'True',
    }
