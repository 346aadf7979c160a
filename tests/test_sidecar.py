from unittest import mock
import requests
from sidecar import Sidecar

def response(status_code=200, text='{}'):
	return mock.Mock(ok=status_code < 400, status_code=status_code, text=text)

def test_endpoint_gets_trailing_slash():
	assert Sidecar('http://127.0.0.1:8080').endpoint == 'http://127.0.0.1:8080/'

def test_account_staking_payouts_params():
	s = Sidecar('http://127.0.0.1:8080')
	with mock.patch('sidecar.requests.get', return_value=response(text='{"erasPayouts": []}')) as get:
		data = s.account_staking_payouts('1Nominator', 3, 100, True, 1000)

	assert data == { 'erasPayouts': [] }
	get.assert_called_once_with(
		'http://127.0.0.1:8080/accounts/1Nominator/staking-payouts',
		{ 'depth': '3', 'era': '100', 'unclaimedOnly': 'true', 'at': '1000' }
	)

def test_account_staking_payouts_defaults():
	s = Sidecar('http://127.0.0.1:8080/')
	with mock.patch('sidecar.requests.get', return_value=response()) as get:
		s.account_staking_payouts('1Nominator')
	assert get.call_args[0][1] == { 'depth': '1' }

def test_bad_response():
	s = Sidecar('http://127.0.0.1:8080/')
	with mock.patch('sidecar.requests.get', return_value=response(500)):
		assert s.runtime_spec() == { 'error': 'Response Error: 500' }

def test_no_connection():
	s = Sidecar('http://127.0.0.1:8080/')
	with mock.patch('sidecar.requests.get', side_effect=requests.exceptions.ConnectionError):
		assert 'error' in s.runtime_spec(1000)

def test_blocks_head():
	s = Sidecar('http://127.0.0.1:8080/')
	with mock.patch('sidecar.requests.get', return_value=response(text='{"number": "1000"}')) as get:
		assert s.blocks() == { 'number': '1000' }
	get.assert_called_once_with('http://127.0.0.1:8080/blocks/head', {})
