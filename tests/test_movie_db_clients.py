# tests/test_movie_db_clients.py
import time
import pytest
import requests

from cinepost.api_clients import strip_year_suffix, raise_for_provider_status
from cinepost.enums import OperationKind, ProviderKind
from cinepost.exceptions import CredentialError, ProviderError, ProviderTimeout
from cinepost.models import CascadeRequest
from cinepost.movie_db_clients import TMDBClient, OMDbClient


@pytest.mark.parametrize("title, expected", [
    ("Inception (2010)", "Inception"),
    ("Blade Runner 2049", "Blade Runner 2049"),
    ("1917 (2019) ", "1917"),
    ("(500) Days of Summer", "(500) Days of Summer"),
    ("(2019)", "(2019)"),
])
def test_strip_year_suffix(title, expected):
    assert strip_year_suffix(title) == expected


def test_raise_for_provider_status_classifies(make_response):
    with pytest.raises(CredentialError, match="invalid API key"):
        raise_for_provider_status(make_response(401, {'status_code': 7, 'status_message': 'Invalid API key: You must be granted a valid key.'}))
    with pytest.raises(ProviderError, match="provider returned status 503"):
        raise_for_provider_status(make_response(503, json_error=True))
    raise_for_provider_status(make_response(200, {}))


# --- TMDB ---

@pytest.fixture
def tmdb(settings, mock_session):
    return TMDBClient("tmdb-key", settings, mock_session)


def test_tmdb_descriptor(tmdb):
    assert tmdb.name == "TMDB"
    assert tmdb.kind is ProviderKind.STRUCTURED_LOOKUP
    assert tmdb.supports(OperationKind.FETCH_FULL_METADATA)
    assert not tmdb.supports(OperationKind.FIX_GRAMMAR)
    assert not TMDBClient(None).is_configured
    assert not TMDBClient("   ").is_configured


def test_tmdb_strips_year_before_search(tmdb, mock_session, make_response, metadata_request, tmdb_movie_details):
    mock_session.get.side_effect = [
        make_response(200, {'results': [{'id': 27205, 'media_type': 'movie', 'title': 'Inception'}]}),
        make_response(200, tmdb_movie_details),
    ]
    response = tmdb.fetch(metadata_request)

    search_call = mock_session.get.call_args_list[0]
    assert search_call.args[0] == "https://api.themoviedb.org/3/search/multi"
    assert search_call.kwargs['params']['query'] == "Inception"
    assert "(2010)" not in str(search_call.kwargs['params'])
    assert search_call.kwargs['params']['api_key'] == "tmdb-key"
    assert search_call.kwargs['timeout'] == 5.0

    details_call = mock_session.get.call_args_list[1]
    assert details_call.args[0] == "https://api.themoviedb.org/3/movie/27205"
    assert details_call.kwargs['params']['append_to_response'] == "credits"
    assert response.payload['media_type'] == "movie"


def test_tmdb_prefers_movie_over_tv(tmdb, mock_session, make_response, metadata_request, tmdb_movie_details):
    mock_session.get.side_effect = [
        make_response(200, {'results': [
            {'id': 1, 'media_type': 'person', 'name': 'Someone'},
            {'id': 1399, 'media_type': 'tv', 'name': 'Inception: The Series'},
            {'id': 27205, 'media_type': 'movie', 'title': 'Inception'},
        ]}),
        make_response(200, tmdb_movie_details),
    ]
    tmdb.fetch(metadata_request)
    assert mock_session.get.call_args_list[1].args[0].endswith("/movie/27205")


def test_tmdb_falls_back_to_first_series(tmdb, mock_session, make_response):
    mock_session.get.side_effect = [
        make_response(200, {'results': [{'id': 1396, 'media_type': 'tv'}, {'id': 2000, 'media_type': 'tv'}]}),
        make_response(200, {'name': 'Breaking Bad'}),
    ]
    response = tmdb.fetch(CascadeRequest(OperationKind.FETCH_FULL_METADATA, "Breaking Bad"))
    assert mock_session.get.call_args_list[1].args[0].endswith("/tv/1396")
    assert response.payload['media_type'] == "tv"


def test_tmdb_select_candidate_ignores_people():
    assert TMDBClient.select_candidate([{'id': 5, 'media_type': 'person'}]) is None
    assert TMDBClient.select_candidate([]) is None


@pytest.mark.parametrize("search_body", [
    {'results': []},
    {'results': [{'id': 5, 'media_type': 'person', 'name': 'Christopher Nolan'}]},
    {'page': 1},
])
def test_tmdb_not_found_returns_none(tmdb, mock_session, make_response, metadata_request, search_body):
    mock_session.get.return_value = make_response(200, search_body)
    assert tmdb.fetch(metadata_request) is None
    assert mock_session.get.call_count == 1


def test_tmdb_details_404_is_not_found(tmdb, mock_session, make_response, metadata_request):
    mock_session.get.side_effect = [
        make_response(200, {'results': [{'id': 9, 'media_type': 'movie'}]}),
        make_response(404, {'status_code': 34, 'status_message': 'The resource you requested could not be found.'}),
    ]
    assert tmdb.fetch(metadata_request) is None


def test_tmdb_invalid_key(tmdb, mock_session, make_response, metadata_request):
    mock_session.get.return_value = make_response(401, {'status_code': 7, 'status_message': 'Invalid API key: You must be granted a valid key.', 'success': False})
    with pytest.raises(CredentialError):
        tmdb.fetch(metadata_request)


def test_tmdb_server_error(tmdb, mock_session, make_response, metadata_request):
    mock_session.get.return_value = make_response(500, {'status_message': 'Internal error'})
    with pytest.raises(ProviderError, match="provider returned status 500: Internal error"):
        tmdb.fetch(metadata_request)


def test_tmdb_malformed_json(tmdb, mock_session, make_response, metadata_request):
    mock_session.get.return_value = make_response(200, json_error=True)
    with pytest.raises(ProviderError, match="malformed JSON"):
        tmdb.fetch(metadata_request)


def test_tmdb_network_error_does_not_leak_key(tmdb, mock_session, metadata_request):
    mock_session.get.side_effect = requests.ConnectionError("Max retries exceeded with url: /3/search/multi?api_key=tmdb-key")
    with pytest.raises(ProviderError) as exc_info:
        tmdb.fetch(metadata_request)
    assert "tmdb-key" not in str(exc_info.value)


def test_tmdb_request_timeout(tmdb, mock_session, metadata_request):
    mock_session.get.side_effect = requests.ReadTimeout("read timed out")
    with pytest.raises(ProviderTimeout):
        tmdb.fetch(metadata_request)


def test_tmdb_normalize_uses_settings(tmdb, tmdb_movie_details):
    meta = tmdb.normalize(tmdb_movie_details)
    assert meta.poster_url.startswith("https://image.tmdb.org/t/p/w500/")
    assert len(meta.cast_list.split(", ")) == 5


# --- OMDb ---

@pytest.fixture
def omdb(settings, mock_session):
    return OMDbClient("omdb-key", settings, mock_session)


def test_omdb_found(omdb, mock_session, make_response, metadata_request, omdb_payload):
    mock_session.get.return_value = make_response(200, omdb_payload)
    response = omdb.fetch(metadata_request)

    params = mock_session.get.call_args.kwargs['params']
    assert params == {'t': 'Inception', 'plot': 'full', 'apikey': 'omdb-key'}
    assert mock_session.get.call_args.args[0] == "https://www.omdbapi.com/"
    assert response.payload['Title'] == "Inception"
    assert omdb.normalize(response.payload).rating_score == "8.8"


def test_omdb_not_found(omdb, mock_session, make_response, metadata_request):
    mock_session.get.return_value = make_response(200, {'Response': 'False', 'Error': 'Movie not found!'})
    assert omdb.fetch(metadata_request) is None


def test_omdb_invalid_key_in_body(omdb, mock_session, make_response, metadata_request):
    mock_session.get.return_value = make_response(401, {'Response': 'False', 'Error': 'Invalid API key!'})
    with pytest.raises(CredentialError, match="invalid API key"):
        omdb.fetch(metadata_request)


def test_omdb_other_error_body(omdb, mock_session, make_response, metadata_request):
    mock_session.get.return_value = make_response(200, {'Response': 'False', 'Error': 'Too many results.'})
    with pytest.raises(ProviderError, match="Too many results."):
        omdb.fetch(metadata_request)


# --- Attempt deadline ---

def test_tmdb_http_timeout_is_what_is_left_of_the_deadline(tmdb, mock_session, make_response, metadata_request, tmdb_movie_details):
    mock_session.get.side_effect = [
        make_response(200, {'results': [{'id': 27205, 'media_type': 'movie'}]}),
        make_response(200, tmdb_movie_details),
    ]
    tmdb.fetch(metadata_request, deadline=time.monotonic() + 1.0)
    for call in mock_session.get.call_args_list:
        assert 0 < call.kwargs['timeout'] <= 1.0


def test_tmdb_skips_details_once_deadline_passed(tmdb, mock_session, make_response, metadata_request):
    def slow_search(url, params, timeout):
        time.sleep(0.1)
        return make_response(200, {'results': [{'id': 27205, 'media_type': 'movie'}]})

    mock_session.get.side_effect = slow_search
    with pytest.raises(ProviderTimeout):
        tmdb.fetch(metadata_request, deadline=time.monotonic() + 0.05)
    assert mock_session.get.call_count == 1


def test_expired_deadline_makes_no_request(tmdb, mock_session, metadata_request):
    with pytest.raises(ProviderTimeout, match="no answer within 5s"):
        tmdb.fetch(metadata_request, deadline=time.monotonic() - 1)
    mock_session.get.assert_not_called()
