# Base class for everything raised while working out staking payouts.
class StakingPayoutsError(Exception):
	pass

# The requested depth/era combination is outside what the chain keeps. This is a user input
# error, so it should be reported back as-is and never retried.
class InvalidRange(StakingPayoutsError):
	pass

# A query to the node failed (network, decoding, or a field we expected was not there).
class UpstreamFetchFailure(StakingPayoutsError):
	def __init__(self, address: str, err: Exception):
		self.address = address
		self.err = err
		super().__init__('Error while fetching payouts for {}: {}'.format(address, err))

# A staking ledger that has none of the claimed rewards fields we know about.
class UnresolvableClaimFormat(StakingPayoutsError):
	pass
