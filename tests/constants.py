from uuid import UUID

TEST_STUDENT_ID = UUID('e46d56d4-a856-49cc-b078-bffa79d9a142')
TEST_OTHER_STUDENT_ID = UUID('7accbce5-4cdd-4ca3-930f-b0042e035299')
TEST_BLOCKED_STUDENT_ID = UUID('a6934e55-9538-4c06-a7b0-545fbd4d8cee')
TEST_TUTOR_ID = UUID('dcef54de-bc89-4388-a7a8-dba5d8327447')
TEST_OTHER_TUTOR_ID = UUID('6667e14b-f8b7-45ee-998a-48832413d4c7')
TEST_PENDING_TUTOR_ID = UUID('d4c17e60-08de-47c7-9ef0-33ae8aa442fb')
TEST_ADMIN_ID = UUID('eca287cc-2774-43d6-bef8-8f2d75ad11cf')

TEST_ACTIVE_POST_ID = UUID('026ce9a5-eded-480f-b98c-a62b459807aa')
TEST_PENDING_POST_ID = UUID('d3bff492-2d0c-4fce-a65b-a58107d125ec')

TEST_STUDENT_EMAIL = 'student.one@tutorate.com'
TEST_OTHER_STUDENT_EMAIL = 'student.two@tutorate.com'
TEST_BLOCKED_STUDENT_EMAIL = 'blocked.student@tutorate.com'
TEST_TUTOR_EMAIL = 'tutor.one@tutorate.com'
TEST_OTHER_TUTOR_EMAIL = 'tutor.two@tutorate.com'
TEST_PENDING_TUTOR_EMAIL = 'pending.tutor@tutorate.com'
TEST_ADMIN_EMAIL = 'admin@tutorate.com'

TEST_TRANSACTION_ID = 'pi_3OtestTransaction01'
