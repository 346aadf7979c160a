# Builds the nominator <-> validator stake graph for an era out of `ErasStakersClipped`
# entries.

# Fold `(validator_id, exposure)` entries into a graph keyed both ways. `exposure` is the
# decoded `Exposure` struct, `{'total', 'own', 'others': [{'who', 'value'}]}`.
def derive_era_exposure(era: int, stakers) -> dict:
	nominators = {}
	validators = {}

	for validator_id, exposure in stakers:
		validator_id = str(validator_id)
		validators[validator_id] = {
			'total': int(exposure['total']),
			'own': int(exposure['own']),
			'others': [
				{ 'who': str(o['who']), 'value': int(o['value']) } for o in exposure['others']
			],
		}

		for validator_index, other in enumerate(validators[validator_id]['others']):
			nominator_id = other['who']
			nominators.setdefault(nominator_id, [])
			nominators[nominator_id].append({
				'validatorId': validator_id,
				'validatorIndex': validator_index,
			})

	return { 'era': era, 'nominators': nominators, 'validators': validators }

# Validators nominated by `address`. A validator counts as nominating itself.
def derive_nominated_exposures(address: str, era_exposure: dict) -> list:
	nominated = [
		n for n in era_exposure['nominators'].get(address, []) if n['validatorId'] != address
	]
	if address in era_exposure['validators']:
		# Index is arbitrary, nothing uses it
		nominated.append({ 'validatorId': address, 'validatorIndex': 9999 })
	return nominated

# Total stake behind `validator_id` and the part of it that belongs to `address`. The second
# value is None if `address` is not behind the validator at all.
def extract_exposure(address: str, validator_id: str, era_exposure: dict):
	validator = era_exposure['validators'][validator_id]
	total_exposure = validator['total']

	if address == validator_id:
		return total_exposure, validator['own']

	for other in validator['others']:
		if other['who'] == address:
			return total_exposure, other['value']
	return total_exposure, None
