# Recipient blood type -> donor blood types that can give to it
COMPATIBILITY = {
    'O-': ['O-'],
    'O+': ['O-', 'O+'],
    'A-': ['O-', 'A-'],
    'A+': ['O-', 'O+', 'A-', 'A+'],
    'B-': ['O-', 'B-'],
    'B+': ['O-', 'O+', 'B-', 'B+'],
    'AB-': ['O-', 'A-', 'B-', 'AB-'],
    'AB+': ['O-', 'O+', 'A-', 'A+', 'B-', 'B+', 'AB-', 'AB+']
}


def get_compatible_blood_types(blood_type):
    """Return list of donor blood types compatible with the given recipient blood type"""
    return COMPATIBILITY.get(blood_type, [])


def can_donate_to(donor_type, recipient_type):
    return donor_type in get_compatible_blood_types(recipient_type)
