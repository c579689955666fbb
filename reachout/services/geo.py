from geopy.distance import geodesic


def distance_km(lat1, lon1, lat2, lon2):
    """Geodesic distance in km, or None when either point is missing."""
    if None in (lat1, lon1, lat2, lon2):
        return None
    return geodesic((lat1, lon1), (lat2, lon2)).km
