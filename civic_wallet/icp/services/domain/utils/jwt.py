from jwcrypto import jwk


def get_alg_for_key(key: jwk.JWK):
    if key.key_type == "OKP":
        alg = "EdDSA"
    elif key.key_type == "RSA":
        alg = "RS256"
    elif key.key_curve == "P-256":
        alg = "ES256"
    else:
        alg = "ES256K"
    return alg
