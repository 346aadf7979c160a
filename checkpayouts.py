import json
import argparse
import requests
from pycoingecko import CoinGeckoAPI
from chainstate import ChainState
from errors import InvalidRange, UpstreamFetchFailure
from payouts import StakingPayouts
from sidecar import Sidecar

# Parse input arguments.
def parse_args(argv=None) -> dict:
	parser = argparse.ArgumentParser(
		description='Work out staking payouts owed to a stash over a range of eras.'
	)
	parser.add_argument(
		'-s', '--stash',
		help='Either a single stash address to check, or path to JSON file keyed by stash.',
		type=str,
		required=True
	)
	parser.add_argument(
		'--filter',
		help='Filter JSON input for addresses values that contain some keyword.',
		type=str,
		default=''
	)
	parser.add_argument(
		'-d', '--depth',
		help='Number of eras to check, at and below the era. Default 1.',
		type=int,
		default=1
	)
	parser.add_argument(
		'-e', '--era',
		help='Most recent era to check. Default is the active era - 1.',
		type=int,
		default=None
	)
	parser.add_argument(
		'-u', '--unclaimed-only',
		help='Only show payouts that have not been claimed.',
		action='store_true'
	)
	parser.add_argument(
		'--node',
		help='Websocket or HTTP endpoint of the node.',
		type=str,
		default='ws://127.0.0.1:9944'
	)
	parser.add_argument(
		'--at',
		help='Block number to query at. Default is the finalized head.',
		type=int,
		default=None
	)
	parser.add_argument(
		'--workers',
		help='Number of concurrent queries to the node.',
		type=int,
		default=8
	)
	parser.add_argument(
		'--compare',
		help='Check the payouts against the ones reported by Sidecar.',
		action='store_true'
	)
	parser.add_argument(
		'--sidecar',
		help='Endpoint for Sidecar.',
		type=str,
		default='http://127.0.0.1:8080/'
	)
	parser.add_argument(
		'--usd',
		help='Show the value of unclaimed payouts at the current price.',
		action='store_true'
	)
	parser.add_argument(
		'-v', '--verbose',
		help='Verbose logging.',
		default=False,
		action='store_true'
	)

	args = parser.parse_args(argv)
	if args.workers < 1:
		parser.error('--workers must be at least 1')

	if args.stash[-5:].lower() == '.json':
		with open(args.stash, mode='r') as address_file:
			addresses = json.loads(address_file.read())
	else:
		addresses = { args.stash: 'provided-address' }

	# If we specified some filter, remove addresses that don't match it.
	if args.filter:
		addresses = { a: v for a, v in addresses.items() if args.filter in v }

	return {
		'addresses': addresses,
		'depth': args.depth,
		'era': args.era,
		'unclaimed_only': args.unclaimed_only,
		'node': args.node,
		'at': args.at,
		'workers': args.workers,
		'compare': args.compare,
		'endpoint': args.sidecar,
		'usd': args.usd,
		'verbose': args.verbose,
	}

# Total of all payouts in a staking payouts response that have not been claimed yet. Works on
# both our own results and the JSON from Sidecar.
def unclaimed_total(payouts: dict) -> int:
	total = 0
	for era in payouts['erasPayouts']:
		for p in era.get('payouts', []):
			if not p['claimed']:
				total += int(p['nominatorStakingPayout'])
	return total

# Sum of payouts per era, keyed by era. Eras with only a message are left out.
def payouts_by_era(payouts: dict) -> dict:
	by_era = {}
	for era in payouts['erasPayouts']:
		if 'payouts' in era:
			by_era[int(era['era'])] = sum(int(p['nominatorStakingPayout']) for p in era['payouts'])
	return by_era

class PayoutChecker:
	def __init__(self, inputs: dict, chain=None, sidecar=None, cg=None) -> None:
		self.inputs = inputs
		self.verbose = inputs['verbose']

		# APIs
		if chain is None:
			chain = ChainState(inputs['node'])
			if inputs['at'] is not None:
				with chain as head:
					chain = head.at_block(inputs['at'])
		self.chain = chain
		self.payouts = StakingPayouts(chain, inputs['workers'], inputs['verbose'])
		self.sidecar = sidecar or Sidecar(inputs['endpoint'])
		self.cg = cg or CoinGeckoAPI()

		# Network specific
		self.config_network()

	# Set network-specific parameters.
	def config_network(self) -> None:
		self.network = self.chain.spec_name()
		if self.network == 'polkadot':
			self.decimals = 10 ** 10
			self.token = 'DOT'
		elif self.network == 'kusama':
			self.decimals = 10 ** 12
			self.token = 'KSM'
		else:
			self.decimals = 1 # just show planks
			self.token = 'DEV'

	# Log something, if the user specified verbosity.
	def log(self, message: str) -> None:
		if self.verbose:
			print(message)

	# Shut down the worker threads and every connection to the node.
	def close(self) -> None:
		self.payouts.close()
		self.chain.close()

	# Use CoinGecko API to get the current price of the token.
	def get_price(self) -> float:
		try:
			prices = self.cg.get_price(ids=self.network, vs_currencies='usd')
			return float(prices[self.network]['usd'])
		except (requests.exceptions.RequestException, ValueError, KeyError):
			print('CoinGecko price API failure.')
			return 0.0

	# Print what is owed for each era and return the unclaimed total.
	def process_eras(self, payouts: dict) -> int:
		for era in payouts['erasPayouts']:
			if 'message' in era:
				self.log(era['message'])
				continue
			for p in era['payouts']:
				status = 'claimed' if p['claimed'] else 'unclaimed'
				print('Era {}: {} {} from {} ({})'.format(
					era['era'],
					p['nominatorStakingPayout'] / self.decimals,
					self.token,
					p['validatorId'],
					status
				))
		return unclaimed_total(payouts)

	# Check if our payouts match what Sidecar says for the same block.
	def compare_with_sidecar(self, address: str, payouts: dict) -> dict:
		# Sidecar can only answer for blocks it has already seen.
		tip = self.sidecar.blocks()
		if 'error' in tip:
			print('Could not compare with Sidecar: {}'.format(tip['error']))
			return {}
		if int(tip['number']) < int(payouts['at']['height']):
			print('Could not compare with Sidecar: it is at block {}, behind block {}'.format(
				tip['number'], payouts['at']['height']
			))
			return {}

		sidecar_payouts = self.sidecar.account_staking_payouts(
			address,
			self.inputs['depth'],
			self.inputs['era'],
			self.inputs['unclaimed_only'],
			payouts['at']['height']
		)
		if 'error' in sidecar_payouts:
			print('Could not compare with Sidecar: {}'.format(sidecar_payouts['error']))
			return {}

		local = payouts_by_era(payouts)
		remote = payouts_by_era(sidecar_payouts)
		differences = {}
		for era in sorted(set(local) | set(remote)):
			diff = local.get(era, 0) - remote.get(era, 0)
			differences[era] = diff
			print('Era {}: Local {} | Sidecar {} | Difference {}'.format(
				era, local.get(era, 0), remote.get(era, 0), diff
			))
		return differences

	# Work out payouts for one address. Returns the unclaimed total, in planks.
	def check_address(self, address: str) -> int:
		try:
			payouts = self.payouts.fetch_account_staking_payouts(
				address,
				self.inputs['depth'],
				self.inputs['era'],
				self.inputs['unclaimed_only']
			)
		except (InvalidRange, UpstreamFetchFailure) as err:
			print('Error for {}: {}'.format(address, err))
			return 0

		self.log('At block {} ({})'.format(payouts['at']['height'], payouts['at']['hash']))
		total = self.process_eras(payouts)
		print('Total unclaimed for {}: {} {}'.format(address, total / self.decimals, self.token))

		if self.inputs['compare']:
			if self.sidecar.runtime_spec().get('specName') != self.network:
				print('Warning: Sidecar is not connected to {}'.format(self.network))
			self.compare_with_sidecar(address, payouts)

		return total

	# The main function.
	def main(self) -> int:
		total = 0
		try:
			for address in self.inputs['addresses']:
				total += self.check_address(address)
		finally:
			self.close()

		if len(self.inputs['addresses']) > 1:
			print('\nTotal unclaimed: {} {}'.format(total / self.decimals, self.token))
		if self.inputs['usd'] and total > 0:
			price = self.get_price()
			value = round(price * total / self.decimals, 2)
			print('Unclaimed value: {} USD'.format(value))
		return total

def main(argv=None) -> None:
	PayoutChecker(parse_args(argv)).main()

if __name__ == '__main__':
	main()
