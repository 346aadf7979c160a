import threading
import pytest
from chainstate import normalize_reward_points

# Dict-backed stand-in for `ChainState`. `eras` maps an era index to a dict with any of
# `stakers`, `points`, `reward`, `commission`. Counts every query by name.
class FakeChain:
	def __init__(
		self,
		eras=None,
		bonded=None,
		ledgers=None,
		active_era=101,
		current_era=101,
		constants=None,
		storage=None,
		height=1000,
		legacy_points=None
	):
		self.eras = eras or {}
		self.bonded_map = bonded or {}
		self.ledgers = ledgers or {}
		self._active_era = active_era
		self._current_era = current_era
		self.constants = constants if constants is not None else { ('Staking', 'HistoryDepth'): 84 }
		self.storage = storage if storage is not None else { ('Staking', 'ErasRewardPoints'): True }
		self.height = height
		self.legacy_points = legacy_points or {}
		self.calls = {}
		self._lock = threading.Lock()
		self.fail_on = None
		self.closed = []

	def _count(self, name):
		with self._lock:
			self.calls[name] = self.calls.get(name, 0) + 1
		if self.fail_on == name:
			raise ConnectionError('node went away')

	def header(self):
		return { 'height': str(self.height), 'hash': '0x{:064x}'.format(self.height) }

	def spec_name(self):
		return 'polkadot'

	def at_block(self, block_number):
		chain = FakeChain(
			legacy_points=self.legacy_points,
			storage=self.storage,
			height=block_number
		)
		chain.calls = self.calls
		chain._lock = self._lock
		chain.closed = self.closed
		return chain

	def close(self):
		self.closed.append(self.height)

	def __enter__(self):
		return self

	def __exit__(self, *exc):
		self.close()

	def has_storage(self, module, name):
		return bool(self.storage.get((module, name)))

	def constant(self, module, name):
		return self.constants.get((module, name))

	def storage_value(self, module, name):
		value = self.storage.get((module, name))
		if value is True:
			return None
		return value

	def active_era(self):
		return self._active_era

	def current_era(self):
		return self._current_era

	def eras_stakers(self, era):
		self._count('eras_stakers')
		return self.eras.get(era, {}).get('stakers', [])

	def eras_reward_points(self, era):
		self._count('eras_reward_points')
		points = self.eras.get(era, {}).get('points')
		if points is None:
			return None
		return normalize_reward_points(points)

	def eras_validator_reward(self, era):
		self._count('eras_validator_reward')
		return self.eras.get(era, {}).get('reward')

	def eras_validator_commission(self, era, validator_id):
		self._count('eras_validator_commission')
		return self.eras.get(era, {}).get('commission', {}).get(validator_id, 0)

	def bonded(self, stash):
		self._count('bonded')
		return self.bonded_map.get(stash)

	def ledger(self, controller):
		self._count('ledger')
		return self.ledgers.get(controller)

	def current_era_points_earned(self):
		self._count('current_era_points_earned')
		points = self.legacy_points.get(self.height)
		if points is None:
			return None
		return normalize_reward_points(points)

def exposure(total, own, others):
	return {
		'total': total,
		'own': own,
		'others': [{ 'who': who, 'value': value } for who, value in others],
	}

# Era 100: NOMINATOR backs VALIDATOR_A (200 of 1000) and VALIDATOR_B (100 of 500).
# VALIDATOR_A earned 500 of 1000 points, VALIDATOR_B earned nothing.
NOMINATOR = '1Nominator'
VALIDATOR_A = '1ValidatorA'
VALIDATOR_B = '1ValidatorB'

@pytest.fixture
def era_100():
	return {
		'stakers': [
			(VALIDATOR_A, exposure(1000, 300, [('1Other', 500), (NOMINATOR, 200)])),
			(VALIDATOR_B, exposure(500, 400, [(NOMINATOR, 100)])),
		],
		'points': { 'total': 1000, 'individual': [(VALIDATOR_A, 500), ('1Elsewhere', 500)] },
		'reward': 1_000_000,
		'commission': { VALIDATOR_A: 100_000_000, VALIDATOR_B: 50_000_000 },
	}

@pytest.fixture
def chain(era_100):
	return FakeChain(
		eras={ 100: era_100 },
		bonded={ VALIDATOR_A: '1ControllerA', VALIDATOR_B: '1ControllerB' },
		ledgers={
			'1ControllerA': { 'stash': VALIDATOR_A, 'claimed_rewards': [] },
			'1ControllerB': { 'stash': VALIDATOR_B, 'claimed_rewards': [] },
		}
	)
