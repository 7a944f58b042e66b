from typing import List

from cortex.config import settings
from cortex.tools.base_adapter import SourceAdapter
from cortex.models.items import Channel, CollectedItem, WeatherAlertCondition, WeatherData, utcnow
from cortex.models.errors import ConfigurationError, ValidationError

BLIZZARD_SNOW = 15.0
COLD_SNAP_TEMP = -20.0

def evaluate_weather_alert(weather: WeatherData) -> WeatherAlertCondition:
    return WeatherAlertCondition(
        is_blizzard=weather.precipitation >= BLIZZARD_SNOW,
        is_cold_snap=weather.temperature <= COLD_SNAP_TEMP,
        has_storm=weather.alert_flag,
    )

class TorontoWeatherAdapter(SourceAdapter):
    API_URL = "https://api.openweathermap.org/data/2.5/weather"
    CITY_URL = "https://openweathermap.org/city/6167865"
    name = "weather_toronto"
    channel = Channel.CANADA

    async def fetch_weather(self) -> WeatherData:
        if not settings.OPENWEATHER_API_KEY:
            raise ConfigurationError("OPENWEATHER_API_KEY is not set")
        params = {"q": "Toronto,CA", "units": "metric", "lang": "kr", "appid": settings.OPENWEATHER_API_KEY}
        async with self.http_client() as client:
            resp = await self.get(client, self.API_URL, params=params)
        return self.parse(resp.json())

    def parse(self, data: dict) -> WeatherData:
        try:
            main = data["main"]
            condition = (data.get("weather") or [{}])[0]
            return WeatherData(
                temperature=main["temp"],
                feels_like=main["feels_like"],
                temp_max=main.get("temp_max"),
                temp_min=main.get("temp_min"),
                condition=condition.get("main", ""),
                description=condition.get("description", ""),
                humidity=main.get("humidity"),
                wind_speed=(data.get("wind") or {}).get("speed", 0.0),
                precipitation=(data.get("snow") or {}).get("1h", 0.0),
                # The free plan carries no alerts; a paid feed can set "alerts"
                alert_flag=bool(data.get("alerts")),
            )
        except (KeyError, TypeError) as e:
            raise ValidationError(f"{self.name}: unexpected weather payload ({e})") from e

    async def fetch_items(self) -> List[CollectedItem]:
        weather = await self.fetch_weather()
        now = utcnow()
        return [CollectedItem(
            channel=self.channel,
            source=self.name,
            source_url=f"{self.CITY_URL}?date={now.date().isoformat()}",
            title=f"[토론토 날씨] {weather.description} {weather.temperature:.0f}C (체감 {weather.feels_like:.0f}C)",
            full_text=(
                f"{weather.description} | {weather.temperature}°C "
                f"(최고 {weather.temp_max}°C / 최저 {weather.temp_min}°C) | "
                f"습도 {weather.humidity}% | 풍속 {weather.wind_speed}m/s"
            ),
            published_at=now,
            tags=["weather", "toronto"],
        )]
