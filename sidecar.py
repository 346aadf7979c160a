import requests
import json

# Client for a running Substrate API Sidecar. Used to check payouts worked out here against
# what Sidecar reports.
class Sidecar:
	# Where is the sidecar.
	def __init__(self, endpoint: str):
		if endpoint[-1] != '/':
			endpoint = endpoint + '/'
		self.endpoint = endpoint

	# Request some data from sidecar.
	def sidecar_get(self, path: str, params=None) -> dict:
		try:
			response = requests.get(path, params or {})
		except requests.exceptions.RequestException:
			print('Unable to connect to sidecar.')
			return { 'error': 'Unable to connect to sidecar.' }

		return self.process_response(response)

	# Process HTTP response.
	def process_response(self, response) -> dict:
		if response.ok:
			return json.loads(response.text)
		error_message = 'Response Error: {}'.format(response.status_code)
		print(error_message)
		return { 'error': error_message }

	def account_staking_payouts(
		self,
		address: str,
		depth=1,
		era=None,
		unclaimed_only=None,
		block=None
	) -> dict:
		path = '{}accounts/{}/staking-payouts'.format(self.endpoint, address)
		params = { 'depth': str(depth) }
		if era is not None:
			params['era'] = str(era)
		if unclaimed_only is not None:
			params['unclaimedOnly'] = 'true' if unclaimed_only else 'false'
		if block:
			params['at'] = str(block)
		return self.sidecar_get(path, params)

	def blocks(self, block='head') -> dict:
		path = '{}blocks/{}'.format(self.endpoint, block)
		return self.sidecar_get(path)

	def runtime_spec(self, block=None) -> dict:
		path = '{}runtime/spec'.format(self.endpoint)
		params = {}
		if block:
			params['at'] = str(block)
		return self.sidecar_get(path, params)
