import threading
from substrateinterface import SubstrateInterface

# Read-only view of chain storage pinned to one block. All queries go through
# substrate-interface at `block_hash`.
#
# `SubstrateInterface` holds a single websocket and is not safe to share between threads, so
# every thread that queries through this object gets its own connection to `url`. All of them
# are kept so `close()` can shut them down; use the object as a context manager.
class ChainState:
	def __init__(self, url: str, block_hash=None):
		self.url = url
		self._local = threading.local()
		self._connections = []
		self._connections_lock = threading.Lock()
		if block_hash is None:
			block_hash = self.substrate.get_chain_finalised_head()
		self.block_hash = block_hash

	@property
	def substrate(self) -> SubstrateInterface:
		if not hasattr(self._local, 'substrate'):
			substrate = SubstrateInterface(url=self.url)
			with self._connections_lock:
				self._connections.append(substrate)
			self._local.substrate = substrate
		return self._local.substrate

	def close(self) -> None:
		with self._connections_lock:
			connections = self._connections
			self._connections = []
		for substrate in connections:
			substrate.close()
		self._local = threading.local()

	def __enter__(self):
		return self

	def __exit__(self, *exc):
		self.close()

	# Same node, different block. The caller closes the returned handle.
	def at_block(self, block_number: int):
		block_hash = self.substrate.get_block_hash(block_number)
		if block_hash is None:
			raise ValueError('No block {}'.format(block_number))
		return ChainState(self.url, block_hash)

	def header(self) -> dict:
		number = self.substrate.get_block_number(self.block_hash)
		return { 'height': str(number), 'hash': self.block_hash }

	def spec_name(self) -> str:
		runtime = self.substrate.get_block_runtime_version(self.block_hash)
		return runtime['specName']

	def query(self, module: str, name: str, params=None):
		result = self.substrate.query(module, name, params or [], block_hash=self.block_hash)
		return result.value

	def has_storage(self, module: str, name: str) -> bool:
		storage = self.substrate.get_metadata_storage_function(
			module, name, block_hash=self.block_hash
		)
		return storage is not None

	# Value of a runtime constant, or None if the runtime does not have it.
	def constant(self, module: str, name: str):
		constant = self.substrate.get_constant(module, name, block_hash=self.block_hash)
		if constant is None:
			return None
		return constant.value

	# Value of a plain storage item, or None if the runtime does not have it.
	def storage_value(self, module: str, name: str):
		if not self.has_storage(module, name):
			return None
		return self.query(module, name)

	# Staking

	def active_era(self):
		active_era = self.query('Staking', 'ActiveEra')
		if active_era is None:
			return None
		return int(active_era['index'])

	def current_era(self):
		current_era = self.query('Staking', 'CurrentEra')
		if current_era is None:
			return None
		return int(current_era)

	# All `(validator, exposure)` entries of `ErasStakersClipped` for an era.
	def eras_stakers(self, era: int) -> list:
		result = self.substrate.query_map(
			'Staking', 'ErasStakersClipped', [era], block_hash=self.block_hash
		)
		return [(key.value, exposure.value) for key, exposure in result]

	def eras_reward_points(self, era: int):
		points = self.query('Staking', 'ErasRewardPoints', [era])
		if points is None:
			return None
		return normalize_reward_points(points)

	def eras_validator_reward(self, era: int):
		reward = self.query('Staking', 'ErasValidatorReward', [era])
		if reward is None:
			return None
		return int(reward)

	# Commission in Perbill parts.
	def eras_validator_commission(self, era: int, validator_id: str) -> int:
		prefs = self.query('Staking', 'ErasValidatorPrefs', [era, validator_id])
		return int(prefs['commission'])

	def bonded(self, stash: str):
		return self.query('Staking', 'Bonded', [stash])

	def ledger(self, controller: str):
		return self.query('Staking', 'Ledger', [controller])

	# Points of the era in progress at this block. Only exists on very old runtimes.
	def current_era_points_earned(self):
		points = self.query('Staking', 'CurrentEraPointsEarned')
		if points is None:
			return None
		return normalize_reward_points(points)

# `individual` decodes as a list of `(account, points)` pairs on newer runtimes, as a dict on
# some, and as a plain list of points (indexed like the elected set) on the oldest ones.
def normalize_reward_points(points: dict) -> dict:
	individual = points.get('individual') or []
	if isinstance(individual, dict):
		pairs = individual.items()
	elif individual and not isinstance(individual[0], (list, tuple)):
		pairs = enumerate(individual)
	else:
		pairs = individual
	return {
		'total': int(points.get('total') or 0),
		'individual': { str(k): int(v) for k, v in pairs },
	}
