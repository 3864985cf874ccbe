from tasknest.api.base_api import BaseApi
from tasknest.exceptions import APIError, AuthenticationError
from tasknest.models.session import Session, User
from tasknest.utils.validation import validate_email, validate_password, validate_non_empty


def _bearer(access_token: str) -> dict[str, str]:
    return {'authorization': f'Bearer {access_token}'}


class AuthApi(BaseApi):

    async def sign_in(self, email: str, password: str) -> Session:
        """
        Exchanges email and password for a session.

        :param email: Registered email
        :param password: Registered password (plaintext)
        :return: The issued session, including the user
        :raises ValidationError: If email or password format is invalid
        :raises AuthenticationError: If the credentials are rejected
        """
        validate_email(email)
        validate_password(password)

        try:
            json_response = await self._client.post(
                '/auth/v1/token',
                data={'email': email, 'password': password},
                query_params={'grant_type': 'password'}
            )
        except APIError as e:
            raise AuthenticationError(f"Sign-in failed: {e}") from e

        if not json_response.get('access_token') or not json_response.get('user'):
            raise AuthenticationError("Sign-in failed: no session returned")
        return Session(**json_response)

    async def get_user(self, access_token: str) -> User:
        """
        Asks the auth provider who the token belongs to. Fails for revoked or expired tokens.

        :param access_token: Bearer token to check
        :return: The token's user
        :raises APIError: If the provider rejects the token
        """
        validate_non_empty(access_token, "Access token")
        json_response = await self._client.get('/auth/v1/user', headers=_bearer(access_token))
        if not json_response.get('id'):
            raise APIError("Auth provider returned no user")
        return User(**json_response)

    async def sign_out(self, access_token: str) -> None:
        """
        Revokes the session server-side.

        :param access_token: Bearer token of the session to revoke
        """
        await self._client.post('/auth/v1/logout', headers=_bearer(access_token))
