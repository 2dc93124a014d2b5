import logging
import math

import googlemaps
from googlemaps.exceptions import ApiError, Timeout, TransportError
from flask import current_app

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
AVERAGE_SPEED_KMH = 40


class MapsService:
    def __init__(self, api_key=None):
        self.api_key = api_key or current_app.config.get('GOOGLE_MAPS_API_KEY')
        self.client = None
        if self.api_key:
            try:
                self.client = googlemaps.Client(key=self.api_key)
            except ValueError as e:
                logger.warning("Failed to initialize Google Maps client: %s", e)

    def calculate_distance(self, origin, destination):
        """
        Calculate distance and duration between two (lat, lng) points
        """
        lat1, lon1 = (float(v) for v in origin)
        lat2, lon2 = (float(v) for v in destination)

        # Use Google Maps if available
        if self.client:
            try:
                result = self.client.distance_matrix(
                    origins=[f"{lat1},{lon1}"],
                    destinations=[f"{lat2},{lon2}"],
                    mode="driving"
                )

                element = result['rows'][0]['elements'][0]
                if element['status'] == 'OK':
                    return {
                        'distance_km': round(element['distance']['value'] / 1000, 2),
                        'duration_minutes': round(element['duration']['value'] / 60),
                        'status': 'success',
                        'method': 'google'
                    }
            except (ApiError, TransportError, Timeout) as e:
                logger.warning("Google Maps API failed, falling back to Haversine: %s", e)

        return self.calculate_haversine(lat1, lon1, lat2, lon2)

    @staticmethod
    def haversine_km(lat1, lon1, lat2, lon2):
        dLat = math.radians(lat2 - lat1)
        dLon = math.radians(lon2 - lon1)
        a = math.sin(dLat / 2) * math.sin(dLat / 2) + \
            math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * \
            math.sin(dLon / 2) * math.sin(dLon / 2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
        return EARTH_RADIUS_KM * c

    def calculate_haversine(self, lat1, lon1, lat2, lon2):
        d = self.haversine_km(lat1, lon1, lat2, lon2)

        # Estimate duration at an average urban speed
        duration_minutes = int(d / AVERAGE_SPEED_KMH * 60)

        return {
            'distance_km': round(d, 2),
            'duration_minutes': duration_minutes,
            'status': 'success',
            'method': 'haversine'
        }

    def route_distance(self, points):
        """Total km over consecutive (lat, lng) points"""
        total = 0.0
        for origin, destination in zip(points, points[1:]):
            total += self.calculate_distance(origin, destination)['distance_km']
        return round(total, 2)

    def geocode(self, address):
        """Resolve an address to (lat, lng), or None when Maps is not configured"""
        if not self.client or not address:
            return None
        try:
            results = self.client.geocode(address)
        except (ApiError, TransportError, Timeout) as e:
            logger.warning("Geocoding failed for %r: %s", address, e)
            return None
        if not results:
            return None
        location = results[0]['geometry']['location']
        return location['lat'], location['lng']
