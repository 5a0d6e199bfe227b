"""Browser context option models."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from cdpcontext.exceptions import UsageError


class Geolocation(BaseModel):
    """A geolocation override. Immutable so that pages can share one snapshot."""

    model_config = ConfigDict(frozen=True, extra='forbid')

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float = Field(default=0, ge=0)

    @classmethod
    def parse(cls, value: Any) -> 'Geolocation | None':
        """Parse a caller supplied value; ``None`` clears the override.

        Raises:
            UsageError: if the value is not a valid geolocation.
        """
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls.model_validate(value)
        except ValidationError as e:
            raise UsageError(f'parsing geolocation: {e}', operation='setGeolocation') from e

    def to_protocol(self) -> dict[str, float]:
        return {'latitude': self.latitude, 'longitude': self.longitude, 'accuracy': self.accuracy}


class HTTPCredentials(BaseModel):
    """Username and password for HTTP authentication challenges."""

    model_config = ConfigDict(frozen=True, extra='forbid')

    username: str
    password: str = ''

    @classmethod
    def parse(cls, value: Any) -> 'HTTPCredentials | None':
        """Parse a caller supplied value; ``None`` clears the credentials.

        Raises:
            UsageError: if the value has no username.
        """
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls.model_validate(value)
        except ValidationError as e:
            raise UsageError(f'setting HTTP credentials: {e}', operation='setHTTPCredentials') from e


class GrantPermissionsOptions(BaseModel):
    """Options for BrowserContext.grant_permissions."""

    model_config = ConfigDict(extra='forbid')

    origin: str | None = Field(default=None, description='Origin to restrict the grant to. None grants to all origins.')


class BrowserContextOptions(BaseModel):
    """Options a browser context is created with.

    Geolocation, credentials and the offline flag keep changing afterwards
    through the context's setters; the context is their single owner.
    """

    model_config = ConfigDict(
        extra='ignore',
        validate_assignment=True,
        populate_by_name=True,
        validate_by_name=True,
        validate_by_alias=True,
    )

    geolocation: Geolocation | None = Field(default=None, description='Geolocation override for every page')
    http_credentials: HTTPCredentials | None = Field(
        default=None,
        description='Credentials for HTTP authentication',
        validation_alias=AliasChoices('httpCredentials', 'http_credentials'),
    )
    offline: bool = Field(default=False, description='Emulate network being offline')
    permissions: list[str] = Field(default_factory=list, description='Permissions granted when the context is created')
    timeout: float | None = Field(default=None, ge=0, description='Default timeout in milliseconds')
    navigation_timeout: float | None = Field(
        default=None,
        ge=0,
        description='Default navigation timeout in milliseconds',
        validation_alias=AliasChoices('navigationTimeout', 'navigation_timeout'),
    )
