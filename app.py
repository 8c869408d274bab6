from salao import create_app, db

app = create_app()

if __name__ == '__main__':
    # Cria as tabelas antes de subir o servidor de desenvolvimento
    with app.app_context():
        db.create_all()
    app.run(debug=app.config['APP_ENV'] != 'production')
