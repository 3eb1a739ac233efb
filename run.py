from request_system import create_app, celery  # celery is imported for the worker: celery -A run.celery worker


app = create_app()
app.app_context().push()


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5000, debug=True)
