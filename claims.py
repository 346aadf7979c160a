from errors import UnresolvableClaimFormat

# Staking ledgers have recorded claimed rewards in three different ways over the life of the
# chain. Each shape gets its own class with its own `is_claimed`, and `claim_record` picks the
# one that matches a decoded ledger.

# Set of claimed era indices.
class ClaimedRewards:
	field = 'claimed_rewards'

	def __init__(self, eras=None):
		self.eras = set(int(e) for e in eras or [])

	def is_claimed(self, era: int) -> bool:
		return era in self.eras

# Same as `ClaimedRewards`, renamed once claims moved out of the ledger.
class LegacyClaimedRewards(ClaimedRewards):
	field = 'legacy_claimed_rewards'

# Oldest ledgers (runtime <= 240) only kept the last era that was rewarded, so this can only
# ever say that one era was claimed.
class LastReward:
	field = 'last_reward'

	def __init__(self, era=None):
		self.era = None if era is None else int(era)

	def is_claimed(self, era: int) -> bool:
		return self.era is not None and self.era == era

CLAIM_RECORD_SHAPES = (ClaimedRewards, LegacyClaimedRewards, LastReward)

# Build the claim record for a decoded `StakingLedger`. The first field present wins.
def claim_record(ledger: dict):
	for shape in CLAIM_RECORD_SHAPES:
		if shape.field in ledger:
			return shape(ledger[shape.field])
	raise UnresolvableClaimFormat(
		'Ledger of {} has no known claimed rewards field'.format(ledger.get('stash'))
	)

def is_claimed(ledger: dict, era: int) -> bool:
	return claim_record(ledger).is_claimed(era)
