"""
Constants declarations for geoaura
"""

# Mean Earth Radius (approximate for Haversine)
EARTH_RADIUS_METERS = 6_371_000.0
EARTH_RADIUS_KM = EARTH_RADIUS_METERS / 1000

# Niemeyer base-32 geohash alphabet; one character encodes 5 bits
GEOHASH_CHARSET = '0123456789bcdefghjkmnpqrstuvwxyz'
GEOHASH_BITS = (16, 8, 4, 2, 1)

# Resolution levels are geohash lengths
MIN_RESOLUTION = 1
MAX_RESOLUTION = 12
