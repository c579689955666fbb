BLOOD_TYPES = ['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-']

# Urgency levels of a blood request
URGENCY_NORMAL = 'normal'
URGENCY_URGENT = 'urgent'
URGENCY_CRITICAL = 'critical'
URGENCY_LEVELS = [URGENCY_NORMAL, URGENCY_URGENT, URGENCY_CRITICAL]

# BloodRequestMatch.status
MATCH_OPEN = 'open'
MATCH_FULFILLED = 'fulfilled'
MATCH_EXPIRED = 'expired'
MATCH_CANCELLED = 'cancelled'
MATCH_STATUSES = [MATCH_OPEN, MATCH_FULFILLED, MATCH_EXPIRED, MATCH_CANCELLED]
TERMINAL_MATCH_STATUSES = {MATCH_FULFILLED, MATCH_EXPIRED, MATCH_CANCELLED}

# MatchCandidate.response
RESPONSE_PENDING = 'pending'
RESPONSE_ACCEPTED = 'accepted'
RESPONSE_DECLINED = 'declined'
RESPONSE_EXPIRED = 'expired'
CANDIDATE_RESPONSES = [RESPONSE_PENDING, RESPONSE_ACCEPTED, RESPONSE_DECLINED, RESPONSE_EXPIRED]

# DonationRecord.verification_status
DONATION_PENDING = 'pending'
DONATION_VERIFIED = 'verified'
DONATION_REJECTED = 'rejected'
VERIFICATION_STATUSES = [DONATION_PENDING, DONATION_VERIFIED, DONATION_REJECTED]

DONATION_COOLDOWN_DAYS = 90
DEFAULT_RADIUS_KM = 50
MIN_RADIUS_KM = 1
MAX_RADIUS_KM = 200
DEFAULT_TIMEZONE = 'Asia/Dhaka'

# Notifier events, fired after commit
EVENT_MATCH_FULFILLED = 'match_fulfilled'
EVENT_MATCH_EXPIRED = 'match_expired'
EVENT_MATCH_CANCELLED = 'match_cancelled'
EVENT_CANDIDATE_DECLINED = 'candidate_declined'
EVENT_CANDIDATE_EXPIRED = 'candidate_expired'
