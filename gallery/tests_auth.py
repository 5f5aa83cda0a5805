import time
from datetime import timedelta

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.tokens import AccessToken

from .authentication import issue_token, verify
from .models import User
from .testing import PASSWORD, make_user


class SignupAPITests(APITestCase):
    """
    Test suite for POST /api/signup
    """

    def setUp(self):
        self.signup_url = reverse('signup')
        self.valid_user_data = {
            'first_name': 'Ada',
            'last_name': 'Lovelace',
            'email': 'ada@example.com',
            'phone': '555-0101',
            'company': 'Analytical Engines',
            'password': PASSWORD,
        }

    def test_signup_success(self):
        """Test successful signup returns a token and public user fields"""
        response = self.client.post(self.signup_url, self.valid_user_data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['message'], 'User created successfully')
        self.assertIn('token', response.data)

        user_data = response.data['user']
        self.assertEqual(user_data['email'], 'ada@example.com')
        self.assertEqual(user_data['first_name'], 'Ada')
        self.assertEqual(user_data['last_name'], 'Lovelace')
        self.assertNotIn('password', user_data)

        user = User.objects.get(email='ada@example.com')
        self.assertEqual(user.company, 'Analytical Engines')
        self.assertEqual(user.phone, '555-0101')
        self.assertNotEqual(user.password, PASSWORD)
        self.assertTrue(user.check_password(PASSWORD))

    def test_signup_token_names_new_user(self):
        """Test the issued token identifies the created user"""
        response = self.client.post(self.signup_url, self.valid_user_data, format='json')

        identity = verify(response.data['token'])
        self.assertEqual(identity.user_id, response.data['user']['id'])
        self.assertEqual(identity.email, 'ada@example.com')

    def test_signup_distinct_emails(self):
        """Test signups with different emails never collide"""
        for i in range(3):
            data = dict(self.valid_user_data, email=f'user{i}@example.com')
            response = self.client.post(self.signup_url, data, format='json')
            self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        self.assertEqual(User.objects.count(), 3)

    def test_signup_duplicate_email(self):
        """Test a second signup with the same email is rejected"""
        self.client.post(self.signup_url, self.valid_user_data, format='json')

        duplicate = dict(self.valid_user_data, first_name='Other')
        response = self.client.post(self.signup_url, duplicate, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)
        self.assertEqual(User.objects.filter(email='ada@example.com').count(), 1)

    def test_signup_missing_fields(self):
        """Test signup with missing profile fields"""
        response = self.client.post(self.signup_url, {'email': 'x@example.com', 'password': PASSWORD}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        for field in ('first_name', 'last_name', 'phone', 'company'):
            self.assertIn(field, response.data)

    def test_signup_weak_password(self):
        """Test signup with a password the validators refuse"""
        data = dict(self.valid_user_data, password='123')

        response = self.client.post(self.signup_url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_signup_invalid_email(self):
        """Test signup with a malformed email"""
        data = dict(self.valid_user_data, email='not-an-email')

        response = self.client.post(self.signup_url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)


class LoginAPITests(APITestCase):
    """
    Test suite for POST /api/login
    """

    def setUp(self):
        self.login_url = reverse('login')
        self.user = make_user(email='grace@example.com', first_name='Grace', last_name='Hopper')

    def test_login_success(self):
        """Test login with correct credentials"""
        response = self.client.post(self.login_url, {'email': 'grace@example.com', 'password': PASSWORD}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Login successful')
        self.assertEqual(response.data['user']['id'], self.user.id)
        self.assertEqual(response.data['user']['first_name'], 'Grace')

        identity = verify(response.data['token'])
        self.assertEqual(identity.user_id, self.user.id)
        self.assertEqual(identity.email, 'grace@example.com')

    def test_login_wrong_password(self):
        """Test login with a wrong password"""
        response = self.client.post(self.login_url, {'email': 'grace@example.com', 'password': 'wrong-password'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['detail'], 'Invalid credentials')

    def test_login_unknown_email_matches_wrong_password(self):
        """Test unknown email and wrong password give the same response"""
        unknown = self.client.post(self.login_url, {'email': 'nobody@example.com', 'password': PASSWORD}, format='json')
        wrong = self.client.post(self.login_url, {'email': 'grace@example.com', 'password': 'wrong-password'}, format='json')

        self.assertEqual(unknown.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(unknown.status_code, wrong.status_code)
        self.assertEqual(unknown.data, wrong.data)

    def test_login_email_domain_case(self):
        """Test an email whose domain differs only in case logs in after signup"""
        signup = self.client.post(reverse('signup'), {
            'first_name': 'Alan',
            'last_name': 'Turing',
            'email': 'alan@EXAMPLE.com',
            'phone': '555-0102',
            'company': 'Bletchley',
            'password': PASSWORD,
        }, format='json')
        self.assertEqual(signup.status_code, status.HTTP_201_CREATED)

        response = self.client.post(self.login_url, {'email': 'alan@EXAMPLE.com', 'password': PASSWORD}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['id'], signup.data['user']['id'])

    def test_login_missing_fields(self):
        """Test login without a password"""
        response = self.client.post(self.login_url, {'email': 'grace@example.com'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)


class TokenGateTests(APITestCase):
    """
    Test suite for bearer token checks, using GET /api/protected
    """

    def setUp(self):
        self.protected_url = reverse('protected')
        self.user = make_user()

    def test_protected_with_valid_token(self):
        """Test the protected route echoes the caller's identity"""
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {issue_token(self.user)}')

        response = self.client.get(self.protected_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user'], {'user_id': self.user.id, 'email': self.user.email})

    def test_protected_without_token(self):
        """Test a request without a token is unauthenticated (401)"""
        response = self.client.get(self.protected_url)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_protected_with_garbage_token(self):
        """Test a token that is not a valid JWT is forbidden (403)"""
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not.a.token')

        response = self.client.get(self.protected_url)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['detail'], 'Invalid token')

    def test_protected_with_expired_token(self):
        """Test an expired token is forbidden (403)"""
        token = AccessToken.for_user(self.user)
        token.set_exp(lifetime=timedelta(hours=-1))
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

        response = self.client.get(self.protected_url)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_protected_with_tampered_token(self):
        """Test a token with a broken signature is forbidden (403)"""
        token = issue_token(self.user)
        header, payload, signature = token.split('.')
        tampered = '.'.join([header, payload, signature[::-1]])
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {tampered}')

        response = self.client.get(self.protected_url)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_token_valid_for_24_hours(self):
        """Test issued tokens expire 24 hours after issuance"""
        token = AccessToken(issue_token(self.user))

        remaining = token['exp'] - time.time()
        self.assertAlmostEqual(remaining, 24 * 60 * 60, delta=60)

    def test_verify_rejects_expired_token(self):
        """Test verify raises for an expired token"""
        token = AccessToken.for_user(self.user)
        token.set_exp(lifetime=timedelta(seconds=-5))

        with self.assertRaises(InvalidToken):
            verify(str(token))

    def test_string_user_id_claim(self):
        """Test a user_id claim serialized as a string still yields the integer pk"""
        token = AccessToken.for_user(self.user)
        token['user_id'] = str(self.user.id)
        token['email'] = self.user.email

        identity = verify(str(token))

        self.assertEqual(identity.user_id, self.user.id)
        self.assertIsInstance(identity.user_id, int)

        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        response = self.client.get(self.protected_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['user_id'], self.user.id)
