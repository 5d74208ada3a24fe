'''
Tutorate backend: a tuition marketplace API matching students with tutors.
The FastAPI application lives in `main`.
'''
