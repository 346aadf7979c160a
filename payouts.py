import threading
from concurrent.futures import ThreadPoolExecutor
from calcpayout import CalcPayout
from claims import is_claimed
from errors import InvalidRange, StakingPayoutsError, UnresolvableClaimFormat, UpstreamFetchFailure
from exposure import derive_era_exposure, derive_nominated_exposures, extract_exposure

DEFAULT_HISTORY_DEPTH = 84
# Kusama did not prune staking history before this era.
UNBOUNDED_HISTORY_BEFORE_ERA = 518

# Staking ledgers keyed by validator stash, for the lifetime of one request. Ledgers do not
# change from one era to the next for our purposes, so each validator is looked up once.
class LedgerCache(dict):
	def __init__(self):
		super().__init__()
		self._locks = {}

	# One lock per validator so that two eras backing the same validator do not both go to the
	# node for its ledger.
	def lock(self, validator_id: str):
		return self._locks.setdefault(validator_id, threading.Lock())

# Make sure a `depth`/`era` request stays inside the eras the chain still has data for.
# Information is kept for eras in `[current_era - history_depth; current_era]`. A
# `history_depth` of 0 means nothing was pruned yet.
def check_range(depth: int, era: int, current_era: int, history_depth: int) -> None:
	if depth < 1:
		raise InvalidRange('Depth must be greater than 0')
	if history_depth != 0 and depth > history_depth:
		raise InvalidRange('Must specify a depth less than history_depth')
	if history_depth != 0 and era - (depth - 1) < current_era - history_depth:
		# Depth is fine on its own, but era and depth together reach below history depth.
		raise InvalidRange(
			'Must specify era and depth such that era - (depth - 1) is less '
			'than or equal to current_era - history_depth.'
		)

# Submit every call to `pool` and wait for all of them. Results come back in the same order as
# `calls`, whatever order they finish in.
def gather(pool: ThreadPoolExecutor, *calls) -> list:
	futures = [pool.submit(call) for call in calls]
	return [f.result() for f in futures]

# Works out payouts against one `ChainState`. The thread pools (and with them the node
# connections their threads open) live as long as this object, so many requests share them.
# Call `close()`, or use it as a context manager, when done.
class StakingPayouts:
	def __init__(self, chain, workers=8, verbose=False):
		if workers < 1:
			raise ValueError('Need at least one worker')
		self.chain = chain
		self.workers = workers
		self.verbose = verbose
		# Era tasks go on `era_pool`. `query_pool` only runs single queries that never submit
		# more work, so an era task can always wait on it.
		self.era_pool = ThreadPoolExecutor(workers)
		self.query_pool = ThreadPoolExecutor(workers)

	def close(self) -> None:
		self.era_pool.shutdown()
		self.query_pool.shutdown()

	def __enter__(self):
		return self

	def __exit__(self, *exc):
		self.close()

	# Log something, if the user specified verbosity.
	def log(self, message: str) -> None:
		if self.verbose:
			print(message)

	# Default to the last era that can be paid out (active era - 1) and refuse anything newer.
	# Returns `(era, current_era)`.
	def resolve_eras(self, era=None) -> tuple:
		active_era = self.chain.active_era()
		current_era = self.chain.current_era()
		if active_era is None:
			active_era = current_era
		if active_era is None:
			raise InvalidRange('Staking has no active era at this block')
		if current_era is None:
			current_era = active_era

		if era is None:
			era = active_era - 1
		elif era > active_era - 1:
			raise InvalidRange(
				'The specified era ({}) is too large. Largest era payout info is available for is {}'
				.format(era, active_era - 1)
			)
		return era, current_era

	# `HistoryDepth` moved from storage to a constant at some point, and before either existed
	# Kusama just kept everything.
	def fetch_history_depth(self, current_era: int) -> int:
		history_depth = self.chain.constant('Staking', 'HistoryDepth')
		if history_depth is None:
			history_depth = self.chain.storage_value('Staking', 'HistoryDepth')
		if history_depth is None:
			if current_era < UNBOUNDED_HISTORY_BEFORE_ERA:
				history_depth = 0
			else:
				history_depth = DEFAULT_HISTORY_DEPTH
		return int(history_depth)

	# Fetch and derive payouts for `address`, the stash of a nominator or validator.
	#
	# `depth`          number of eras to query at and below `era`
	# `era`            the most recent era to query; defaults to active era - 1
	# `unclaimed_only` only show payouts that have not been claimed yet
	# `current_era`    the current era; read from the chain if not given
	def fetch_account_staking_payouts(
		self,
		address: str,
		depth=1,
		era=None,
		unclaimed_only=True,
		current_era=None
	) -> dict:
		try:
			if era is None or current_era is None:
				resolved_era, resolved_current_era = self.resolve_eras(era)
				era = resolved_era
				if current_era is None:
					current_era = resolved_current_era

			history_depth = self.fetch_history_depth(current_era)
			check_range(depth, era, current_era, history_depth)

			at = self.chain.header()

			# User friendly - don't error if era & depth reach below 0, just start at 0.
			start_era = max(0, era - (depth - 1))
			self.log('Fetching eras {} to {} for {}'.format(start_era, era, address))

			legacy = not self.chain.has_storage('Staking', 'ErasRewardPoints')
			if legacy:
				all_eras_general = self.fetch_all_legacy_eras_general(start_era, era)
			else:
				all_eras_general = self.fetch_all_eras_general(start_era, era)
			all_eras_commissions = self.fetch_all_eras_commissions(
				address,
				start_era,
				[exposure for exposure, _, _ in all_eras_general]
			)
		except StakingPayoutsError:
			raise
		except Exception as err:
			raise UpstreamFetchFailure(address, err) from err

		# Group the data by era so what is used together downstream sits together.
		eras_payouts = []
		for idx, (era_exposure, reward_points, validator_reward) in enumerate(all_eras_general):
			nominated = derive_nominated_exposures(address, era_exposure)
			era_commissions = all_eras_commissions[idx]
			exposures_with_commission = [
				dict(validatorId=n['validatorId'], **era_commissions[ii])
				for ii, n in enumerate(nominated)
			]
			eras_payouts.append(self.derive_era_payouts(address, unclaimed_only, {
				'era': start_era + idx,
				'legacy': legacy,
				'era_exposure': era_exposure,
				'reward_points': reward_points,
				'validator_reward': validator_reward,
				'exposures_with_commission': exposures_with_commission,
			}))

		return { 'at': at, 'erasPayouts': eras_payouts }

	def fetch_all_eras_general(self, start_era: int, era: int) -> list:
		eras = range(start_era, era + 1)
		return list(self.era_pool.map(self.fetch_era_general, eras))

	def fetch_era_general(self, era: int) -> tuple:
		stakers, reward_points, validator_reward = gather(
			self.query_pool,
			lambda: self.chain.eras_stakers(era),
			lambda: self.chain.eras_reward_points(era),
			lambda: self.chain.eras_validator_reward(era),
		)
		if reward_points is None:
			reward_points = { 'total': 0, 'individual': {} }
		return derive_era_exposure(era, stakers), reward_points, validator_reward

	# Runtimes from before `ErasRewardPoints` only know the points of the era in progress. Our
	# block lies somewhere in the active era, so era `e` is found by walking back
	# `active_era - e` era lengths (`SessionsPerEra * EpochDuration` blocks) and reading
	# `CurrentEraPointsEarned` there.
	#
	# These runtimes have no per-era exposure or validator reward, so payouts for these eras
	# are not supported. Each era comes back with an empty exposure and no payout pool.
	def fetch_all_legacy_eras_general(self, start_era: int, era: int) -> list:
		sessions_per_era = int(self.chain.constant('Staking', 'SessionsPerEra'))
		epoch_duration = int(self.chain.constant('Babe', 'EpochDuration'))
		era_length = sessions_per_era * epoch_duration
		block = int(self.chain.header()['height'])
		active_era = self.chain.active_era()
		if active_era is None:
			active_era = self.chain.current_era()
		if active_era is None:
			active_era = era
		self.log('Legacy eras: {} blocks per era from block {} in era {}'.format(
			era_length, block, active_era
		))

		def fetch(e):
			block_number = max(0, block - (active_era - e) * era_length)
			reward_points = self.fetch_historic_reward_points(block_number)
			self.log('Era {} (block {}): {} points'.format(e, block_number, reward_points['total']))
			return derive_era_exposure(e, []), reward_points, None

		return list(self.era_pool.map(fetch, range(start_era, era + 1)))

	def fetch_historic_reward_points(self, block_number: int) -> dict:
		with self.chain.at_block(block_number) as historic:
			reward_points = historic.current_era_points_earned()
		if reward_points is None:
			return { 'total': 0, 'individual': {} }
		return reward_points

	# Commission and staking ledger of each validator `address` nominates, per era. Ledgers
	# are cached for the duration of this call only.
	def fetch_all_eras_commissions(self, address: str, start_era: int, era_exposures: list) -> list:
		ledger_cache = LedgerCache()

		all_eras_futures = []
		for idx, era_exposure in enumerate(era_exposures):
			current = start_era + idx
			nominated = derive_nominated_exposures(address, era_exposure)
			all_eras_futures.append([
				self.query_pool.submit(
					self.fetch_commission_and_ledger,
					n['validatorId'],
					current,
					ledger_cache
				)
				for n in nominated
			])

		return [[f.result() for f in futures] for futures in all_eras_futures]

	# Commission of `validator_id` in `era` and its staking ledger. The ledger is left out if
	# the stash has no controller or the controller has no ledger.
	def fetch_commission_and_ledger(
		self,
		validator_id: str,
		era: int,
		ledger_cache: LedgerCache
	) -> dict:
		commission = self.chain.eras_validator_commission(era, validator_id)

		with ledger_cache.lock(validator_id):
			if validator_id in ledger_cache:
				return { 'commission': commission, 'validatorLedger': ledger_cache[validator_id] }

			controller = self.chain.bonded(validator_id)
			if controller is None:
				self.log('Era {}: {} has no controller'.format(era, validator_id))
				return { 'commission': commission }

			validator_ledger = self.chain.ledger(controller)
			if validator_ledger is None:
				self.log('Era {}: controller {} has no ledger'.format(era, controller))
				return { 'commission': commission }

			ledger_cache[validator_id] = validator_ledger

		return { 'commission': commission, 'validatorLedger': validator_ledger }

	# Derive all the payouts for `address` in one era.
	def derive_era_payouts(self, address: str, unclaimed_only: bool, era_data: dict) -> dict:
		era = era_data['era']
		if era_data.get('legacy'):
			return { 'message': 'Payouts are not supported for the era {}'.format(era) }

		if not era_data['exposures_with_commission']:
			return { 'message': '{} has no nominations for the era {}'.format(address, era) }

		if era_data['validator_reward'] is None:
			return { 'message': 'No ErasValidatorReward for the era {}'.format(era) }

		era_exposure = era_data['era_exposure']
		total_era_reward_points = era_data['reward_points']['total']
		total_era_payout = era_data['validator_reward']
		calc_payout = CalcPayout.from_params(total_era_reward_points, total_era_payout)

		# Go through the validators this nominator backs and work out each payout.
		payouts = []
		for exposure_with_commission in era_data['exposures_with_commission']:
			validator_id = exposure_with_commission['validatorId']
			validator_commission = exposure_with_commission['commission']
			validator_ledger = exposure_with_commission.get('validatorLedger')

			total_validator_reward_points = \
				era_data['reward_points']['individual'].get(validator_id, 0)
			if total_validator_reward_points == 0:
				# No points, no reward.
				continue

			total_exposure, nominator_exposure = extract_exposure(address, validator_id, era_exposure)
			if nominator_exposure is None:
				# Should not happen at this point, here for safety.
				continue

			if validator_ledger is None:
				continue

			try:
				claimed = is_claimed(validator_ledger, era)
			except UnresolvableClaimFormat as err:
				self.log('Era {}: skipping {}: {}'.format(era, validator_id, err))
				continue

			if unclaimed_only and claimed:
				continue

			nominator_staking_payout = calc_payout.calc_payout(
				total_validator_reward_points,
				validator_commission,
				nominator_exposure,
				total_exposure,
				address == validator_id
			)

			payouts.append({
				'validatorId': validator_id,
				'nominatorStakingPayout': nominator_staking_payout,
				'claimed': claimed,
				'totalValidatorRewardPoints': total_validator_reward_points,
				'validatorCommission': validator_commission,
				'totalValidatorExposure': total_exposure,
				'nominatorExposure': nominator_exposure,
			})

		return {
			'era': era,
			'totalEraRewardPoints': total_era_reward_points,
			'totalEraPayout': total_era_payout,
			'payouts': payouts,
		}
