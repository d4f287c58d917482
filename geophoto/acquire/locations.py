"""Search locations and the per-attempt search strategy.

The first attempt searches a handful of cities at the base radius. Every
retry moves on to cities not yet searched in this run and widens the radius,
so a retry sees a different candidate pool instead of the same rejects.
"""

from __future__ import annotations

import random

from geophoto.config import AcquisitionConfig
from geophoto.types import Coordinates, SearchLocation

# Major cities spread over every inhabited continent
WORLD_LOCATIONS: tuple[tuple[str, float, float], ...] = (
    # Africa
    ("Lagos", 6.5244, 3.3792),
    ("Accra", 5.5560, -0.1969),
    ("Addis Ababa", 9.0300, 38.7400),
    ("Algiers", 36.7538, 3.0588),
    ("Johannesburg", -26.2041, 28.0473),
    ("Cape Town", -33.9249, 18.4241),
    ("Cairo", 30.0444, 31.2357),
    ("Casablanca", 33.5731, -7.5898),
    ("Dakar", 14.6928, -17.4467),
    ("Kinshasa", -4.4419, 15.2663),
    ("Dar es Salaam", -6.7924, 39.2083),
    # Asia
    ("Beijing", 39.9042, 116.4074),
    ("Shanghai", 31.2304, 121.4737),
    ("Hong Kong", 22.3193, 114.1694),
    ("New Delhi", 28.6139, 77.2090),
    ("Mumbai", 19.0760, 72.8777),
    ("Kolkata", 22.5726, 88.3639),
    ("Tokyo", 35.6762, 139.6503),
    ("Osaka", 34.6937, 135.5023),
    ("Seoul", 37.5665, 126.9780),
    ("Hanoi", 21.0285, 105.8542),
    ("Bangkok", 13.7563, 100.5018),
    ("Singapore", 1.3521, 103.8198),
    ("Jakarta", -6.2088, 106.8456),
    ("Manila", 14.5995, 120.9842),
    ("Dhaka", 23.8103, 90.4125),
    ("Kathmandu", 27.7172, 85.3240),
    ("Karachi", 24.8607, 67.0011),
    ("Tashkent", 41.2995, 69.2401),
    ("Taipei", 25.0330, 121.5654),
    # Europe
    ("London", 51.5074, -0.1278),
    ("Manchester", 53.4808, -2.2426),
    ("Paris", 48.8566, 2.3522),
    ("Lyon", 45.7640, 4.8357),
    ("Berlin", 52.5200, 13.4050),
    ("Munich", 48.1351, 11.5820),
    ("Rome", 41.9028, 12.4964),
    ("Milan", 45.4642, 9.1900),
    ("Madrid", 40.4168, -3.7038),
    ("Barcelona", 41.3851, 2.1734),
    ("Lisbon", 38.7223, -9.1393),
    ("Amsterdam", 52.3676, 4.9041),
    ("Brussels", 50.8503, 4.3517),
    ("Zurich", 47.3769, 8.5417),
    ("Vienna", 48.2082, 16.3738),
    ("Oslo", 59.9139, 10.7522),
    ("Stockholm", 59.3293, 18.0686),
    ("Helsinki", 60.1699, 24.9384),
    ("Copenhagen", 55.6761, 12.5683),
    ("Reykjavik", 64.1466, -21.9426),
    ("Dublin", 53.3498, -6.2603),
    ("Moscow", 55.7558, 37.6176),
    ("Saint Petersburg", 59.9311, 30.3609),
    ("Kyiv", 50.4501, 30.5234),
    ("Warsaw", 52.2297, 21.0122),
    ("Krakow", 50.0647, 19.9450),
    ("Prague", 50.0755, 14.4378),
    ("Budapest", 47.4979, 19.0402),
    ("Bucharest", 44.4268, 26.1025),
    ("Athens", 37.9838, 23.7275),
    ("Belgrade", 44.8176, 20.4633),
    ("Istanbul", 41.0082, 28.9784),
    # North America
    ("Washington", 38.9072, -77.0369),
    ("New York", 40.7128, -74.0060),
    ("Los Angeles", 34.0522, -118.2437),
    ("Chicago", 41.8781, -87.6298),
    ("Houston", 29.7604, -95.3698),
    ("San Francisco", 37.7749, -122.4194),
    ("Seattle", 47.6062, -122.3321),
    ("Boston", 42.3601, -71.0589),
    ("Toronto", 43.6532, -79.3832),
    ("Montreal", 45.5017, -73.5673),
    ("Vancouver", 49.2827, -123.1207),
    ("Mexico City", 19.4326, -99.1332),
    ("Guadalajara", 20.6597, -103.3496),
    ("San Jose", 9.9281, -84.0907),
    ("Panama City", 8.9824, -79.5199),
    # South America
    ("Rio de Janeiro", -22.9068, -43.1729),
    ("Sao Paulo", -23.5558, -46.6396),
    ("Buenos Aires", -34.6037, -58.3816),
    ("Santiago", -33.4489, -70.6693),
    ("Bogota", 4.7110, -74.0721),
    ("Lima", -12.0464, -77.0428),
    ("Quito", -0.1807, -78.4678),
    ("Montevideo", -34.9011, -56.1645),
    # Oceania
    ("Sydney", -33.8688, 151.2093),
    ("Melbourne", -37.8136, 144.9631),
    ("Brisbane", -27.4698, 153.0251),
    ("Perth", -31.9505, 115.8605),
    ("Auckland", -36.8485, 174.7633),
    ("Wellington", -41.2865, 174.7762),
    # Middle East
    ("Tehran", 35.6892, 51.3890),
    ("Baghdad", 33.3152, 44.3661),
    ("Jerusalem", 31.7683, 35.2137),
    ("Beirut", 33.8938, 35.5018),
    ("Dubai", 25.2048, 55.2708),
    ("Riyadh", 24.7136, 46.6753),
    ("Doha", 25.2854, 51.5310),
    ("Muscat", 23.5859, 58.4059),
)


class SearchStrategy:
    """Choose where to search on each attempt of one pipeline run.

    Locations are drawn without replacement from a shuffled copy of the
    table; once the table is exhausted it is reshuffled. The radius grows by
    ``radius_growth`` per attempt, capped at ``max_radius_m``.

    One instance belongs to one pipeline invocation.
    """

    def __init__(
        self,
        config: AcquisitionConfig | None = None,
        locations: tuple[tuple[str, float, float], ...] = WORLD_LOCATIONS,
        rng: random.Random | None = None,
    ) -> None:
        if not locations:
            raise ValueError("At least one search location is required")
        self.config = config or AcquisitionConfig()
        self._table = locations
        self._rng = rng or random.Random(self.config.seed)
        self._pool: list[tuple[str, float, float]] = []

    def radius_for(self, attempt: int) -> int:
        radius = self.config.base_radius_m * (self.config.radius_growth ** (attempt - 1))
        return int(min(radius, self.config.max_radius_m))

    def locations_for(self, attempt: int) -> list[SearchLocation]:
        """Fresh locations for ``attempt`` (1-based)."""
        radius = self.radius_for(attempt)
        picked: list[SearchLocation] = []
        count = min(self.config.locations_per_attempt, len(self._table))
        while len(picked) < count:
            if not self._pool:
                self._pool = list(self._table)
                self._rng.shuffle(self._pool)
            name, lat, lon = self._pool.pop()
            if any(p.name == name for p in picked):
                continue
            picked.append(SearchLocation(name=name, coordinates=Coordinates(lat, lon), radius_m=radius))
        return picked
