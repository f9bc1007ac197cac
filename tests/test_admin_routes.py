from datetime import timedelta

from bson import ObjectId

from tests.support import ApiTestCase, bearer, decode


class AdminAuthTests(ApiTestCase):
    def test_register_returns_token_and_public_fields(self):
        body = self.register_admin()
        self.assertTrue(body['success'])
        self.assertEqual(body['admin']['name'], 'A')
        self.assertEqual(body['admin']['email'], 'a@x.com')
        self.assertEqual(body['admin']['role'], 'admin')
        self.assertNotIn('password', body['admin'])

        claims = decode(body['token'])
        self.assertEqual(claims['sub'], body['admin']['id'])
        self.assertEqual(claims['role'], 'admin')

        stored = self.db.admin_users.find_one({'email': 'a@x.com'})
        self.assertTrue(stored['active'])
        self.assertNotEqual(stored['password'], 'secret1')

    def test_register_same_email_twice_conflicts(self):
        self.register_admin()
        response = self.client.post('/admin/register', json={'name': 'A', 'email': 'a@x.com', 'password': 'secret1'})
        self.assertEqual(response.status_code, 409)
        self.assertFalse(response.json()['success'])
        self.assertEqual(self.db.admin_users.count_documents({'email': 'a@x.com'}), 1)

    def test_register_validation_reports_fields(self):
        response = self.client.post('/admin/register', json={'name': '', 'email': 'bad', 'password': '123'})
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['message'], 'Validation error')
        self.assertEqual(set(body['details']), {'name', 'email', 'password'})

    def test_login_token_has_no_role_claim(self):
        admin = self.register_admin()['admin']
        response = self.client.post('/admin/login', json={'email': 'a@x.com', 'password': 'secret1'})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['admin'], {'name': 'A', 'email': 'a@x.com'})
        claims = decode(body['token'])
        self.assertEqual(claims['sub'], admin['id'])
        self.assertNotIn('role', claims)

    def test_login_unknown_email_is_not_found(self):
        response = self.client.post('/admin/login', json={'email': 'nobody@x.com', 'password': 'secret1'})
        self.assertEqual(response.status_code, 404)

    def test_login_wrong_password_is_unauthorized(self):
        self.register_admin()
        response = self.client.post('/admin/login', json={'email': 'a@x.com', 'password': 'wrong-pass'})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['message'], 'Invalid password')

    def test_login_inactive_admin_is_forbidden(self):
        self.register_admin()
        self.db.admin_users.update_one({'email': 'a@x.com'}, {'$set': {'active': False}})
        response = self.client.post('/admin/login', json={'email': 'a@x.com', 'password': 'secret1'})
        self.assertEqual(response.status_code, 403)

    def test_teachers_lists_admins(self):
        self.register_admin()
        self.register_admin(name='B', email='b@x.com')
        response = self.client.get('/admin/teachers')
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['count'], 2)
        self.assertEqual({t['email'] for t in body['teachers']}, {'a@x.com', 'b@x.com'})
        self.assertTrue(all('password' not in t for t in body['teachers']))


class BatchTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        registered = self.register_admin()
        self.admin_id = registered['admin']['id']
        self.admin_token = registered['token']

    def test_create_batch_uppercases_code_and_populates_teacher(self):
        batch = self.create_batch(self.admin_id)
        self.assertEqual(batch['batch_code'], 'CS101')
        self.assertEqual(batch['class'], '10')
        self.assertEqual(batch['students'], [])
        self.assertEqual(batch['teacher_id']['_id'], self.admin_id)
        self.assertEqual(batch['teacher_id']['name'], 'A')
        self.assertEqual(self.db.batches.find_one()['batch_code'], 'CS101')

    def test_create_batch_unknown_teacher_persists_nothing(self):
        response = self.client.post(
            '/admin/batches',
            json={'batch_code': 'cs101', 'name': 'CS', 'class': '10', 'teacher_id': str(ObjectId())},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.db.batches.count_documents({}), 0)

    def test_create_batch_malformed_teacher_id_is_not_found(self):
        response = self.client.post(
            '/admin/batches',
            json={'batch_code': 'cs101', 'name': 'CS', 'class': '10', 'teacher_id': 'nope'},
        )
        self.assertEqual(response.status_code, 404)

    def test_batch_code_is_unique_case_insensitively(self):
        self.create_batch(self.admin_id, batch_code='cs101')
        response = self.client.post(
            '/admin/batches',
            json={'batch_code': 'CS101', 'name': 'Other', 'class': '11', 'teacher_id': self.admin_id},
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(self.db.batches.count_documents({}), 1)

    def test_add_students_appends_once(self):
        batch = self.create_batch(self.admin_id)
        student_id = self.register_student()['user']['id']

        url = f"/admin/batches/{batch['_id']}/students"
        first = self.client.post(url, json={'studentIds': [student_id]})
        self.assertEqual(first.status_code, 200)
        self.assertEqual([s['_id'] for s in first.json()['batch']['students']], [student_id])

        second = self.client.post(url, json={'studentIds': [student_id]})
        self.assertEqual(second.status_code, 200)
        self.assertEqual(len(self.db.batches.find_one()['students']), 1)

    def test_add_students_rejects_whole_request_on_non_student(self):
        batch = self.create_batch(self.admin_id)
        student_id = self.register_student()['user']['id']
        parent_id = str(self.db.users.find_one({'role': 'parent'})['_id'])

        response = self.client.post(
            f"/admin/batches/{batch['_id']}/students", json={'studentIds': [student_id, parent_id]}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.batches.find_one()['students'], [])

    def test_add_students_rejects_malformed_id(self):
        batch = self.create_batch(self.admin_id)
        student_id = self.register_student()['user']['id']
        response = self.client.post(
            f"/admin/batches/{batch['_id']}/students", json={'studentIds': [student_id, 'garbage']}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.db.batches.find_one()['students'], [])

    def test_add_students_rejects_repeated_id(self):
        batch = self.create_batch(self.admin_id)
        student_id = self.register_student()['user']['id']
        response = self.client.post(
            f"/admin/batches/{batch['_id']}/students", json={'studentIds': [student_id, student_id]}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'One or more invalid student IDs')
        self.assertEqual(self.db.batches.find_one()['students'], [])

    def test_add_students_requires_non_empty_list(self):
        batch = self.create_batch(self.admin_id)
        for payload in ({'studentIds': []}, {'studentIds': 'abc'}, {}):
            response = self.client.post(f"/admin/batches/{batch['_id']}/students", json=payload)
            self.assertEqual(response.status_code, 400, payload)
            self.assertEqual(response.json()['message'], 'Invalid student IDs')

    def test_add_students_unknown_batch(self):
        response = self.client.post(f'/admin/batches/{ObjectId()}/students', json={'studentIds': [str(ObjectId())]})
        self.assertEqual(response.status_code, 404)

    def test_list_and_get_batches(self):
        self.create_batch(self.admin_id, batch_code='a1')
        second = self.create_batch(self.admin_id, batch_code='b2')

        listed = self.client.get('/admin/batches').json()['batches']
        self.assertEqual({b['batch_code'] for b in listed}, {'A1', 'B2'})

        detail = self.client.get(f"/admin/batches/{second['_id']}")
        self.assertEqual(detail.status_code, 200)
        body = detail.json()['batch']
        self.assertEqual(body['batch_code'], 'B2')
        self.assertEqual(body['status'], 'active')
        self.assertEqual(body['teacher_id']['email'], 'a@x.com')

        self.assertEqual(self.client.get(f'/admin/batches/{ObjectId()}').status_code, 404)
        self.assertEqual(self.client.get('/admin/batches/not-an-id').status_code, 404)


class AnnouncementTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        registered = self.register_admin()
        self.admin_id = registered['admin']['id']
        self.admin_token = registered['token']
        self.batch = self.create_batch(self.admin_id)
        self.url = f"/admin/batches/{self.batch['_id']}/announcements"

    def test_raw_admin_id_is_not_a_token(self):
        response = self.client.post(self.url, json={'title': 'T', 'content': 'C'}, headers=bearer(self.admin_id))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.db.batches.find_one()['announcements'], [])

    def test_missing_token_is_unauthorized(self):
        response = self.client.post(self.url, json={'title': 'T', 'content': 'C'})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['message'], 'Authentication required')

    def test_owner_posts_newest_first(self):
        first = self.client.post(self.url, json={'title': 'First', 'content': 'one'}, headers=bearer(self.admin_token))
        self.assertEqual(first.status_code, 201)
        announcement = first.json()['announcement']
        self.assertEqual(announcement['title'], 'First')
        self.assertEqual(announcement['teacher_id']['_id'], self.admin_id)
        self.assertIn('createdAt', announcement)

        login = self.client.post('/admin/login', json={'email': 'a@x.com', 'password': 'secret1'}).json()
        second = self.client.post(self.url, json={'title': 'Second', 'content': 'two'}, headers=bearer(login['token']))
        self.assertEqual(second.status_code, 201)

        listed = self.client.get(self.url)
        self.assertEqual(listed.status_code, 200)
        titles = [a['title'] for a in listed.json()['announcements']]
        self.assertEqual(titles, ['Second', 'First'])
        self.assertEqual(listed.json()['announcements'][0]['teacher_id']['name'], 'A')

    def test_other_teacher_is_forbidden(self):
        other = self.register_admin(name='B', email='b@x.com')
        response = self.client.post(self.url, json={'title': 'T', 'content': 'C'}, headers=bearer(other['token']))
        self.assertEqual(response.status_code, 403)

    def test_student_token_is_rejected(self):
        student = self.register_student()
        response = self.client.post(self.url, json={'title': 'T', 'content': 'C'}, headers=bearer(student['token']))
        self.assertEqual(response.status_code, 403)

    def test_expired_admin_token(self):
        token = self.auth.create_access_token({'sub': self.admin_id, 'email': 'a@x.com'}, timedelta(minutes=-1))
        response = self.client.post(self.url, json={'title': 'T', 'content': 'C'}, headers=bearer(token))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['message'], 'Token has expired')

    def test_announcement_requires_title_and_content(self):
        response = self.client.post(self.url, json={'title': 'T'}, headers=bearer(self.admin_token))
        self.assertEqual(response.status_code, 400)
        self.assertIn('content', response.json()['details'])

    def test_unknown_batch(self):
        url = f'/admin/batches/{ObjectId()}/announcements'
        self.assertEqual(self.client.get(url).status_code, 404)
        response = self.client.post(url, json={'title': 'T', 'content': 'C'}, headers=bearer(self.admin_token))
        self.assertEqual(response.status_code, 404)


class RoutingErrorTests(ApiTestCase):
    def test_unknown_route_uses_envelope(self):
        response = self.client.get('/no-such-route')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {'success': False, 'message': 'Not Found'})

    def test_wrong_method_uses_envelope(self):
        response = self.client.delete('/admin/teachers')
        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.json(), {'success': False, 'message': 'Method Not Allowed'})
        self.assertIn('GET', response.headers['allow'])
